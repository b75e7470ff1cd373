import json

import streamlit as st

from frontend.client import (
    BACKEND_URL,
    RelayError,
    build_form_payload,
    call_forward_form,
    fetch_form_schema,
)

DEFAULT_FORM_ID = "1bc429ed-c5a2-4783-9dd8-40eaac8a59f1"

# ==========================
# Cấu hình
# ==========================
st.set_page_config(page_title="n8n Form Relay", page_icon="🎨", layout="centered")

st.title("🎨 Image generation")
st.caption("Gửi form sang n8n qua backend relay")

if "responses" not in st.session_state:
    st.session_state["responses"] = []

# ==========================
# Sidebar
# ==========================
with st.sidebar:
    st.header("⚙️ Cài đặt")
    form_id = st.text_input("🆔 Form ID", value=DEFAULT_FORM_ID)
    encoding = st.selectbox("📦 Encoding", ["(server default)", "json", "form", "multipart"])
    mode = st.selectbox("🔀 Thứ tự gửi", ["(server default)", "direct-first", "proxy-first"])

    if st.button("🗑️ Xóa lịch sử", use_container_width=True):
        st.session_state["responses"] = []
        st.rerun()

    st.markdown("---")
    st.write("🔗 Backend:", BACKEND_URL)

try:
    schema = fetch_form_schema(form_id)
    fields = schema["formFields"]
    account_options = fields["accountName"]["options"]
    category_options = fields["category"]["options"]
except Exception as e:
    st.error(f"Không tải được form từ backend: {e}")
    st.stop()

# ==========================
# Form
# ==========================
with st.form("generateForm"):
    account_name = st.selectbox("Account Name", [""] + account_options)
    category = st.selectbox("Category", [""] + category_options)
    prompt = st.text_area("Prompt", placeholder="Input your prompt or image idea")
    submitted = st.form_submit_button("Generate", use_container_width=True)

if submitted:
    if not account_name:
        st.error("Please select an Account Name")
    elif not category:
        st.error("Please select a Category")
    else:
        payload = build_form_payload(account_name, category, prompt)
        with st.spinner("⏳ Đang gửi sang n8n..."):
            try:
                body = call_forward_form(
                    payload,
                    encoding=None if encoding.startswith("(") else encoding,
                    mode=None if mode.startswith("(") else mode,
                )
            except (RelayError, OSError) as e:
                st.error(f"❌ Lỗi: {e}")
            else:
                st.success("✅ Submitted to n8n Form successfully")
                st.session_state["responses"].insert(0, {"payload": payload, "body": body})

# ==========================
# Kết quả
# ==========================
for item in st.session_state["responses"]:
    with st.expander(f"n8n Form Response — {item['payload']['accountName']}", expanded=True):
        st.code(json.dumps(item["body"], indent=2, ensure_ascii=False), language="json")
