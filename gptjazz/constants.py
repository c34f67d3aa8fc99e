from __future__ import annotations

DEFAULT_MODEL = "gpt-3.5-turbo"
GENERATOR_MODEL = "gpt-4-1106-preview"
DEFAULT_STYLE = "jazz"
