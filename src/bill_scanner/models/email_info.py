"""Transient per-run email metadata.

Only headers are kept here; bodies are fetched separately for the capped
candidate set and never stored.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class EmailInfo(BaseModel):
    """Headers of a candidate message plus its catalog match."""

    message_id: str = Field(description="Gmail message ID")
    sender: str = Field(default="", description="Raw From header")
    sender_email: str = Field(default="", description="Normalized (lowercased) sender address")
    subject: str = Field(default="", description="Subject header")
    date: datetime = Field(description="Date header, or internalDate when missing")

    # Set by the service matcher; None for unmatched or discovery-path emails.
    service_name: str | None = Field(default=None, description="Matched catalog name")
