# backend/generator.py
"""
Mock generator ảnh / caption. Chỉ là placeholder: khi tích hợp AI thật
(DALL-E, Stable Diffusion, ...) chỉ cần giữ nguyên shape của descriptor.
"""

import asyncio
import random
from urllib.parse import quote

from config.settings import settings

from .utils import utc_now_iso
from .model import CaptionDescriptor, ContentType, GenerationResult, ImageDescriptor

CONTENT_TYPES = ("image", "caption", "both")

PLACEHOLDER_URL = "https://via.placeholder.com/512x512/4f46e5/ffffff?text={text}"

CAPTION_TEMPLATES = [
    'A creative interpretation of "{prompt}" showcasing vibrant colors and dynamic composition.',
    'An artistic representation featuring "{prompt}" with modern aesthetic elements.',
    'A compelling visual narrative inspired by "{prompt}" with attention to detail and atmosphere.',
    'An imaginative scene depicting "{prompt}" in a contemporary artistic style.',
]


async def generate_image(prompt: str) -> ImageDescriptor:
    await asyncio.sleep(settings.IMAGE_DELAY)
    return ImageDescriptor(
        url=PLACEHOLDER_URL.format(text=quote(prompt[:50], safe="!'()*~")),
        prompt=prompt,
        width=512,
        height=512,
        format="png",
        generated_at=utc_now_iso(),
    )


async def generate_caption(prompt: str) -> CaptionDescriptor:
    await asyncio.sleep(settings.CAPTION_DELAY)
    return CaptionDescriptor(
        text=random.choice(CAPTION_TEMPLATES).format(prompt=prompt),
        prompt=prompt,
        confidence=0.85 + random.random() * 0.1,
        generated_at=utc_now_iso(),
    )


async def generate_content(prompt: str, content_type: ContentType) -> GenerationResult:
    """
    Chạy generate theo type (image | caption | both). Với "both" hai lần chờ chạy song song.
    """
    if content_type not in CONTENT_TYPES:
        raise ValueError(f"Unsupported content type: {content_type!r}")

    if content_type == "both":
        image, caption = await asyncio.gather(generate_image(prompt), generate_caption(prompt))
        return GenerationResult(image=image, caption=caption)
    if content_type == "image":
        return GenerationResult(image=await generate_image(prompt))
    return GenerationResult(caption=await generate_caption(prompt))
