"""
Utility helper functions
"""
from datetime import datetime
import re
import secrets

from fastapi import Request


def slugify(text: str) -> str:
    """Convert text to URL-friendly slug"""
    text = text.lower()
    text = re.sub(r'[^\w\s-]', '', text)
    text = re.sub(r'[-\s_]+', '-', text)
    return text.strip('-')


def safe_file_name(name: str) -> str:
    """Strip path components and unsafe characters from an uploaded file name"""
    name = (name or "").replace("\\", "/").rsplit("/", 1)[-1]
    name = re.sub(r'[^\w.\-]+', '_', name).strip('._')
    return name or "file"


def generate_reference(prefix: str) -> str:
    """Human-readable reference number, e.g. JS-20250101-3FA9C2"""
    return f"{prefix}-{datetime.utcnow():%Y%m%d}-{secrets.token_hex(3).upper()}"


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""
