#!/usr/bin/env python3
"""
CLI Runner for the Report Assistant.

Handles everything local: the state file, printing results, and driving the
core package for login, report browsing and AI synthesis.

Usage:
    python cli_runner.py login dingtalk
    python cli_runner.py callback "http://localhost:5173/auth/callback?code=...&state=..."
    python cli_runner.py templates
    python cli_runner.py reports --template-name 日报 --days 7
    python cli_runner.py summarize --target 周报 --template-name 日报 --days 7
    python cli_runner.py settings --provider deepseek --api-key sk-... --model deepseek-chat
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

import httpx

# Import all core functionality
from report_assistant import (
    # Config
    HTTP_TIMEOUT,
    STATE_FILE,
    SUPPORTED_PROVIDERS,
    validate_config,
    # Errors
    ReportAssistantError,
    AuthenticationRequired,
    # Models
    ReportFilter,
    # Session + catalog
    JsonFileStore,
    CredentialStore,
    ReportCatalog,
    # AI
    PROVIDERS,
    CompletionSettings,
    StreamingCompletionClient,
    ReportSynthesizer,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


# =============================================================================
# OUTPUT HELPERS
# =============================================================================

def print_json(data) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


def build_filter(args: argparse.Namespace) -> ReportFilter:
    end_time = datetime.now()
    start_time = end_time - timedelta(days=args.days) if args.days else None
    return ReportFilter(
        template_id=args.template_id,
        template_name=args.template_name,
        start_time=start_time,
        end_time=end_time if args.days else None,
    )


# =============================================================================
# COMMANDS
# =============================================================================

async def cmd_login(args, credentials: CredentialStore, catalog: ReportCatalog) -> int:
    auth_url = await credentials.begin_login(args.provider)
    print(f"Open this URL to authorize {SUPPORTED_PROVIDERS[args.provider]}:\n{auth_url}")
    print("Then run: python cli_runner.py callback '<redirect url>'")
    return 0


async def cmd_callback(args, credentials: CredentialStore, catalog: ReportCatalog) -> int:
    session = await credentials.handle_auth_callback(args.url)
    logger.info(f"✅ Logged in as {session.user.display_name} ({session.user.provider})")
    return 0


async def cmd_whoami(args, credentials: CredentialStore, catalog: ReportCatalog) -> int:
    credentials.require_session()
    user = await credentials.fetch_current_user()
    print_json(user.model_dump())
    return 0


async def cmd_logout(args, credentials: CredentialStore, catalog: ReportCatalog) -> int:
    await credentials.logout()
    logger.info("Logged out")
    return 0


async def cmd_templates(args, credentials: CredentialStore, catalog: ReportCatalog) -> int:
    templates = await catalog.list_templates()
    print_json([t.model_dump(mode='json') for t in templates])
    return 0


async def cmd_reports(args, credentials: CredentialStore, catalog: ReportCatalog) -> int:
    reports = await catalog.list_reports(build_filter(args))
    logger.info(f"Found {len(reports)} report(s)")
    print_json([r.model_dump(mode='json') for r in reports])
    return 0


async def cmd_summarize(args, credentials: CredentialStore, catalog: ReportCatalog) -> int:
    template = await catalog.template_detail(args.target)
    reports = await catalog.list_reports(build_filter(args))
    if not reports:
        logger.error("No source reports matched the filter")
        return 1

    settings = CompletionSettings.load(credentials.storage)
    async with StreamingCompletionClient(settings) as client:
        summary = await ReportSynthesizer(client).summarize_reports(reports, template)

    for field in template.fields:
        print(f"\n## {field.label}\n{summary.get(field.id, '')}")
    return 0


async def cmd_settings(args, credentials: CredentialStore, catalog: ReportCatalog) -> int:
    settings = CompletionSettings.load(credentials.storage)
    updates = {k: v for k, v in (('provider', args.provider), ('api_key', args.api_key), ('model', args.model)) if v}
    if updates:
        if 'provider' in updates and updates['provider'] not in PROVIDERS:
            logger.error(f"Unknown AI provider: {updates['provider']} (known: {', '.join(PROVIDERS)})")
            return 1
        settings = settings.model_copy(update=updates)
        settings.save(credentials.storage)
        logger.info("AI settings saved")

    masked = settings.api_key[:4] + '…' if settings.api_key else ''
    print_json({'provider': settings.provider, 'model': settings.model, 'apiKey': masked})
    return 0


COMMANDS = {
    'login': cmd_login,
    'callback': cmd_callback,
    'whoami': cmd_whoami,
    'logout': cmd_logout,
    'templates': cmd_templates,
    'reports': cmd_reports,
    'summarize': cmd_summarize,
    'settings': cmd_settings,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Report Assistant CLI")
    parser.add_argument('--state-file', type=Path, default=STATE_FILE, help="Local state file")
    sub = parser.add_subparsers(dest='command', required=True)

    login = sub.add_parser('login', help="Start OAuth login")
    login.add_argument('provider', choices=sorted(SUPPORTED_PROVIDERS))

    callback = sub.add_parser('callback', help="Finish OAuth login with the redirect URL")
    callback.add_argument('url')

    sub.add_parser('whoami', help="Show the logged-in user")
    sub.add_parser('logout', help="Log out")
    sub.add_parser('templates', help="List templates with fields")

    for name in ('reports', 'summarize'):
        cmd = sub.add_parser(name)
        cmd.add_argument('--template-id', help="Template/rule id (Feishu)")
        cmd.add_argument('--template-name', help="Template name (DingTalk)")
        cmd.add_argument('--days', type=int, default=7, help="Look back this many days (0 = no time filter)")
        if name == 'summarize':
            cmd.add_argument('--target', required=True, help="Name of the template to generate")

    settings = sub.add_parser('settings', help="Show or update AI settings")
    settings.add_argument('--provider')
    settings.add_argument('--api-key')
    settings.add_argument('--model')

    return parser


async def run(args: argparse.Namespace) -> int:
    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as http_client:
        credentials = CredentialStore(JsonFileStore(args.state_file), http_client)
        catalog = ReportCatalog.from_registry(credentials)
        return await COMMANDS[args.command](args, credentials, catalog)


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    is_valid, errors = validate_config()
    if not is_valid:
        for error in errors:
            logger.error(error)
        return 2

    try:
        return asyncio.run(run(args))
    except AuthenticationRequired as e:
        logger.error(f"{e} - run: python cli_runner.py login <provider>")
        return 3
    except ReportAssistantError as e:
        logger.error(f"❌ {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
