"""
Configuration module for the Report Assistant.

Loads environment variables and defines all constants used across the application.
Both the CLI and the server import their settings from here.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# =============================================================================
# BACKEND CONFIGURATION
# =============================================================================

API_BASE_URL = os.getenv("REPORT_API_BASE_URL", "http://localhost:8080").rstrip("/")
GRAPHQL_PATH = "/api/graphql"
LOGIN_PATH = "/login"

HTTP_TIMEOUT = float(os.getenv("REPORT_HTTP_TIMEOUT", "30"))

# Providers the backend can authenticate against (id -> display name)
SUPPORTED_PROVIDERS = {
    'dingtalk': '钉钉',
    'feishu': '飞书',
}

# =============================================================================
# REPORT RETRIEVAL
# =============================================================================

DEFAULT_REPORT_PAGE_SIZE = 20
MAX_REPORT_PAGES = 5  # Upper bound when following DingTalk cursors

# =============================================================================
# COMPLETION (AI) CONFIGURATION
# =============================================================================

DEFAULT_COMPLETION_PROVIDER = os.getenv("REPORT_AI_PROVIDER", "deepseek")
DEFAULT_COMPLETION_MODEL = os.getenv("REPORT_AI_MODEL", "")
COMPLETION_API_KEY = os.getenv("REPORT_AI_API_KEY", "")

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2000
COMPLETION_TIMEOUT = float(os.getenv("REPORT_AI_TIMEOUT", "120"))

DEFAULT_SYSTEM_PROMPT = (
    '你是一个专业的文本编辑助手，请根据用户的要求对文本进行处理。'
    '直接返回处理后的结果，不要添加额外的解释或格式。'
)

# =============================================================================
# LOCAL STATE (key -> value)
# =============================================================================

STATE_FILE = Path(os.getenv("REPORT_STATE_FILE", "~/.report_assistant/state.json")).expanduser()

TOKEN_KEY = 'report_app_auth_token'
USER_KEY = 'report_app_user_info'
EXPIRES_AT_KEY = 'report_app_token_expires_at'
AI_SETTINGS_KEY = 'ai_settings'
OAUTH_STATE_KEY = 'oauth_state'
OAUTH_PROVIDER_KEY = 'oauth_provider'
THEME_KEY = 'theme'


def validate_config() -> tuple[bool, list[str]]:
    """
    Validate that required configuration is present.

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []

    if not API_BASE_URL.startswith(("http://", "https://")):
        errors.append(f"REPORT_API_BASE_URL must be an http(s) URL, got: {API_BASE_URL!r}")

    if HTTP_TIMEOUT <= 0:
        errors.append("REPORT_HTTP_TIMEOUT must be positive")

    return len(errors) == 0, errors
