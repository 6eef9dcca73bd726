"""Constants shared across the update service modules."""

from __future__ import annotations

ENDPOINT_ENV = "AUTOUPDATE_UPDATE_ENDPOINT"
DISABLE_UPDATES_ENV = "AUTOUPDATE_DISABLE_UPDATES"

ENDPOINT_PLACEHOLDERS = ("{{owner}}", "{{repo}}")
ENDPOINT_SCHEMES = ("http", "https")

MANIFEST_MEDIA_TYPE = "application/json"
USER_AGENT_TEMPLATE = "{product}/{version} (updater)"

STAGING_DIRNAME = "updates"
PENDING_MARKER_NAME = "pending.json"
DOWNLOAD_SUFFIX = ".part"
