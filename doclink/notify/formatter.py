"""User-facing message texts. Plain text with the transport's *bold* markup."""

from collections.abc import Iterable

from doclink.analysis.models import Summary

DIVIDER = "━━━━━━━━━━━━━━━━━━━━"


def _bullets(items: Iterable[str]) -> str:
    return "\n".join(f"• {item}" for item in items)


def format_summary(filename: str, summary: Summary) -> str:
    sections = [
        "✅ *Document Summary Complete*",
        f"📄 *File:* {filename}",
        DIVIDER,
        f"📋 *{summary.title}*",
        f"*Executive Summary:*\n{summary.executive_summary}",
        f"*Key Points:*\n{_bullets(summary.key_points)}",
        f"*Important Facts:*\n{_bullets(summary.important_facts)}",
        f"*Insights:*\n{summary.insights}",
        f"*TL;DR:*\n{summary.tldr}",
        DIVIDER,
    ]
    return "\n\n".join(sections)


def format_acknowledgment(filename: str) -> str:
    return (
        f"📄 Document received: *{filename}*\n\n"
        "⏳ Processing your document...\n\n"
        "You'll receive a summary shortly."
    )


def format_unsupported(filename: str, mime_type: str, supported: Iterable[str]) -> str:
    return (
        "❌ *Unsupported File Format*\n\n"
        f"File: {filename}\n"
        f"Type: {mime_type}\n\n"
        "📋 *Supported formats:*\n"
        f"{_bullets(supported)}\n\n"
        "Please send a document in one of these formats."
    )


def format_oversized(filename: str, size_bytes: int, limit_bytes: int) -> str:
    return (
        "❌ *File Too Large*\n\n"
        f"File: {filename}\n"
        f"Size: {_megabytes(size_bytes)}\n\n"
        f"The maximum size is {_megabytes(limit_bytes)}. "
        "Please send a smaller document."
    )


def format_failure(filename: str) -> str:
    return (
        f"❌ Sorry, we could not process *{filename}*.\n\n"
        "Please try again later or send the document again."
    )


def _megabytes(size_bytes: int) -> str:
    return f"{size_bytes / (1024 * 1024):.1f} MB"
