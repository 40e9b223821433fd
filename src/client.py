"""Telegram client factory and login flow for tgcrawler.

Credentials come from `.env` via python-dotenv. When API_ID/API_HASH are
missing the user is asked once and the answers are written back to `.env`
so later runs start without prompts.
"""

from __future__ import annotations

import asyncio
import logging
import os
from getpass import getpass

import qrcode
from dotenv import find_dotenv, load_dotenv, set_key
from telethon import TelegramClient, errors

LOGGER = logging.getLogger(__name__)

DEFAULT_SESSION_NAME = "tgcrawler"

QR_ATTEMPTS = 3
QR_TIMEOUT = 120
LOGIN_CHOICES = {"q": "qr", "qr": "qr", "p": "phone", "phone": "phone"}


def _prompt_api_id() -> str:
    while True:
        value = input("API ID: ").strip()
        if value.isdigit():
            return value
        print("API ID must be a number.")


def _load_credentials(env_path: str) -> tuple[int, str]:
    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    if api_id and api_hash:
        return int(api_id), api_hash

    print("API credentials are not configured (see https://my.telegram.org).")
    api_id = api_id or _prompt_api_id()
    api_hash = api_hash or input("API hash: ").strip()
    if not api_hash:
        raise RuntimeError("API_HASH is required")

    if not os.path.exists(env_path):
        with open(env_path, "a", encoding="utf-8"):
            pass
    set_key(env_path, "API_ID", api_id)
    set_key(env_path, "API_HASH", api_hash)
    LOGGER.info("Saved API credentials to %s", env_path)
    return int(api_id), api_hash


def build_client() -> TelegramClient:
    """Create a Telethon client from environment variables.

    The session name defaults to "tgcrawler", creating a local .session file.
    """

    env_path = find_dotenv(usecwd=True) or os.path.join(os.getcwd(), ".env")
    load_dotenv(env_path)

    api_id, api_hash = _load_credentials(env_path)
    session_name = os.getenv("SESSION_NAME", DEFAULT_SESSION_NAME)

    LOGGER.info("Initializing Telegram client")

    # Flood waits are surfaced to our retry policy instead of being slept
    # through silently inside Telethon.
    return TelegramClient(session_name, api_id, api_hash, flood_sleep_threshold=0)


def _show_qr(url: str) -> None:
    code = qrcode.QRCode(border=1)
    code.add_data(url)
    code.print_ascii(invert=True)


def _two_step_password() -> str:
    return os.getenv("2FA") or getpass("Two-step verification password: ")


async def _login_by_qr(client: TelegramClient) -> None:
    login = await client.qr_login()
    for attempt in range(1, QR_ATTEMPTS + 1):
        _show_qr(login.url)
        print("In Telegram open Settings > Devices > Link Desktop Device and scan this code.")
        try:
            await login.wait(timeout=QR_TIMEOUT)
            return
        except asyncio.TimeoutError:
            if attempt == QR_ATTEMPTS:
                raise
            LOGGER.info("QR code expired, issuing a new one (%s/%s)", attempt + 1, QR_ATTEMPTS)
            await login.recreate()


async def _login_by_phone(client: TelegramClient) -> None:
    phone = os.getenv("PHONE") or input("Phone number with country code: ").strip()
    sent = await client.send_code_request(phone)
    while True:
        code = input("Code Telegram sent you: ").strip()
        try:
            await client.sign_in(phone=phone, code=code, phone_code_hash=sent.phone_code_hash)
            return
        except errors.PhoneCodeInvalidError:
            print("Telegram rejected that code, try again.")


def _login_method() -> str:
    configured = (os.getenv("LOGIN_METHOD") or "").strip().lower()
    if configured in ("qr", "phone"):
        return configured

    print("This session is not logged in yet.")
    while True:
        answer = input("Log in with [q]r code or [p]hone code (empty to quit): ").strip().lower()
        if not answer:
            raise SystemExit(0)
        method = LOGIN_CHOICES.get(answer)
        if method is not None:
            return method
        print(f"Unknown choice {answer!r}.")


async def authorize(client: TelegramClient) -> None:
    """Sign in interactively unless the stored session is still valid."""

    if await client.is_user_authorized():
        return

    try:
        if _login_method() == "phone":
            await _login_by_phone(client)
        else:
            await _login_by_qr(client)
    except errors.SessionPasswordNeededError:
        await client.sign_in(password=_two_step_password())

    me = await client.get_me()
    LOGGER.info("Signed in as %s", getattr(me, "first_name", None) or getattr(me, "id", "?"))
