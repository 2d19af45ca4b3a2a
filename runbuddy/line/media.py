import base64

_PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


def sniff_image_mime(data: bytes) -> str:
    """Guess an image MIME type from magic bytes, defaulting to JPEG."""
    if data[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if data[:8] == _PNG_MAGIC:
        return "image/png"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    return "image/jpeg"


def to_data_url(data: bytes) -> str:
    return f"data:{sniff_image_mime(data)};base64,{base64.b64encode(data).decode()}"
