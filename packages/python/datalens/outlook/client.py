"""
Outlook Desktop client driven through COM automation.

COM handles are apartment-bound, so every call into the Outlook object model
runs on one dedicated worker thread that also owns the Application handle.
Async callers submit work items and wait up to operation_timeout_secs; on
timeout the work item is told to stop at its next checkpoint and the caller
gets AutomationTimeoutError while the worker stays available for later calls.
"""
from __future__ import annotations

import asyncio
import logging
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable

from ..common.config import OutlookConfig
from ..common.errors import AutomationTimeoutError, IntegrationUnavailableError
from .formatter import build_email_chain_response

logger = logging.getLogger(__name__)

OL_FOLDER_INBOX = 6
ADVANCED_SEARCH_POLL_SECS = 0.25
_HTML_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")


def _dispatch_outlook_application() -> Any:
    """Create the Outlook.Application COM object on the calling (worker) thread."""
    try:
        import pythoncom
        import win32com.client
    except ImportError as e:
        raise IntegrationUnavailableError(
            "Outlook automation requires pywin32 on Windows (pip install 'datalens[outlook]')"
        ) from e
    pythoncom.CoInitialize()
    try:
        return win32com.client.Dispatch("Outlook.Application")
    except Exception as e:
        logger.error(f"Failed to connect to Outlook COM: {e}")
        raise IntegrationUnavailableError(
            "Cannot connect to Outlook. Ensure Outlook Desktop is running and "
            "programmatic access is allowed in Trust Center > Macro Settings."
        ) from e


def _safe_get(obj: Any, path: str) -> Any:
    try:
        for attr in path.split("."):
            obj = getattr(obj, attr)
        return obj
    except Exception:
        return None


def _format_time(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    return str(value)


def strip_html(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", _HTML_TAG_RE.sub("", text)).strip()


def _escape_literal(text: str) -> str:
    return text.replace("'", "''")


class OutlookClient:
    def __init__(
        self,
        config: OutlookConfig,
        application_factory: Callable[[], Any] = _dispatch_outlook_application,
        timeout_secs: float | None = None,
    ):
        self.config = config
        self._application_factory = application_factory
        self._timeout_secs = timeout_secs if timeout_secs is not None else config.operation_timeout_secs
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="outlook-com")
        # Only ever read or written on the worker thread.
        self._app: Any = None

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    async def _run(self, work: Callable[..., Any], *args: Any) -> Any:
        cancel = threading.Event()
        future = self._executor.submit(work, cancel, *args)
        try:
            return await asyncio.wait_for(asyncio.wrap_future(future), timeout=self._timeout_secs)
        except asyncio.TimeoutError:
            cancel.set()
            future.cancel()
            raise AutomationTimeoutError(
                f"Outlook operation timed out after {self._timeout_secs:g}s"
            ) from None

    def _application(self) -> Any:
        if self._app is None:
            self._app = self._application_factory()
        return self._app

    # -- public operations ---------------------------------------------------

    async def check_connection(self) -> dict[str, Any]:
        return await self._run(self._check_connection)

    async def search_emails(
        self,
        search_text: str,
        include_personal: bool = True,
        include_shared: bool = True,
    ) -> dict[str, Any]:
        return await self._run(self._search_emails, search_text, include_personal, include_shared)

    # -- worker-thread side ----------------------------------------------------

    def _shared_inbox(self, namespace: Any) -> Any:
        """Resolve the shared mailbox inbox, or None if the recipient does not resolve."""
        recipient = namespace.CreateRecipient(self.config.shared_mailbox_email)
        recipient.Resolve()
        if not recipient.Resolved:
            return None
        return namespace.GetSharedDefaultFolder(recipient, OL_FOLDER_INBOX)

    def _check_connection(self, cancel: threading.Event) -> dict[str, Any]:
        app = self._application()
        namespace = app.GetNamespace("MAPI")
        result: dict[str, Any] = {"connected": True, "outlook_version": _safe_get(app, "Version")}
        try:
            inbox = namespace.GetDefaultFolder(OL_FOLDER_INBOX)
            result["personal_mailbox"] = inbox.FolderPath
            result["personal_mailbox_accessible"] = True
        except Exception as e:
            result["personal_mailbox_accessible"] = False
            result["personal_mailbox_error"] = str(e)

        if self.config.shared_mailbox_email:
            try:
                shared = self._shared_inbox(namespace)
                if shared is None:
                    result["shared_mailbox_accessible"] = False
                    result["shared_mailbox_error"] = (
                        f"Could not resolve recipient: {self.config.shared_mailbox_email}"
                    )
                else:
                    result["shared_mailbox"] = shared.FolderPath
                    result["shared_mailbox_accessible"] = True
            except Exception as e:
                result["shared_mailbox_accessible"] = False
                result["shared_mailbox_error"] = str(e)
        return result

    def _search_emails(
        self,
        cancel: threading.Event,
        search_text: str,
        include_personal: bool,
        include_shared: bool,
    ) -> dict[str, Any]:
        app = self._application()
        namespace = app.GetNamespace("MAPI")
        emails: list[dict[str, Any]] = []

        if include_personal and self.config.search_personal_mailbox:
            try:
                inbox = namespace.GetDefaultFolder(OL_FOLDER_INBOX)
                found = self._search_folder(app, inbox, search_text, "personal", cancel)
                emails.extend(found)
                logger.info(f"Personal mailbox search returned {len(found)} emails")
            except Exception as e:
                logger.error(f"Error searching personal mailbox: {e}")

        if (
            include_shared
            and self.config.search_shared_mailbox
            and self.config.shared_mailbox_email
            and not cancel.is_set()
        ):
            try:
                shared = self._shared_inbox(namespace)
                if shared is not None:
                    found = self._search_folder(app, shared, search_text, "shared", cancel)
                    emails.extend(found)
                    logger.info(f"Shared mailbox search returned {len(found)} emails")
            except Exception as e:
                logger.error(f"Error searching shared mailbox: {e}")

        return build_email_chain_response(search_text, emails)

    def _search_folder(
        self,
        app: Any,
        folder: Any,
        search_text: str,
        mailbox_type: str,
        cancel: threading.Event,
    ) -> list[dict[str, Any]]:
        results: list[dict[str, Any]] = []
        try:
            results = self._advanced_search(app, folder.FolderPath, search_text, mailbox_type, cancel)
        except Exception as e:
            logger.warning(f"AdvancedSearch failed, falling back to Restrict: {e}")

        # Zero results and a failed AdvancedSearch both land here.
        if not results and not cancel.is_set():
            try:
                results = self._restrict_search(folder, search_text, mailbox_type, cancel)
            except Exception as e:
                logger.error(f"Restrict search also failed: {e}")
        return results

    def _advanced_search(
        self,
        app: Any,
        folder_path: str,
        search_text: str,
        mailbox_type: str,
        cancel: threading.Event,
    ) -> list[dict[str, Any]]:
        text = _escape_literal(search_text)
        dasl = (
            f"\"urn:schemas:httpmail:subject\" ci_phrasematch '{text}' "
            f"OR \"urn:schemas:httpmail:textdescription\" ci_phrasematch '{text}'"
        )
        tag = f"DataLensSearch_{int(time.time() * 1000)}"
        search = app.AdvancedSearch(f"'{folder_path}'", dasl, self.config.search_all_folders, tag)

        deadline = time.monotonic() + self.config.search_timeout_secs
        while time.monotonic() < deadline:
            try:
                results = search.Results
                count = results.Count
            except Exception:
                # Results are not readable until the search has started producing them.
                if cancel.wait(ADVANCED_SEARCH_POLL_SECS):
                    return []
                continue
            if count > 0:
                return self._extract_emails(results, count, mailbox_type, cancel)
            break

        try:
            results = search.Results
            count = results.Count
        except Exception as e:
            logger.debug(f"No results from AdvancedSearch: {e}")
            return []
        return self._extract_emails(results, count, mailbox_type, cancel) if count > 0 else []

    def _restrict_search(
        self, folder: Any, search_text: str, mailbox_type: str, cancel: threading.Event
    ) -> list[dict[str, Any]]:
        text = _escape_literal(search_text)
        sql_filter = (
            f"@SQL=\"urn:schemas:httpmail:subject\" LIKE '%{text}%' "
            f"OR \"urn:schemas:httpmail:textdescription\" LIKE '%{text}%'"
        )
        items = folder.Items.Restrict(sql_filter)
        if cancel.is_set():
            return []
        return self._extract_emails(items, items.Count, mailbox_type, cancel)

    def _extract_emails(
        self, items: Any, count: int, mailbox_type: str, cancel: threading.Event
    ) -> list[dict[str, Any]]:
        emails = []
        for i in range(1, min(count, self.config.max_search_results) + 1):
            if cancel.is_set():
                logger.info(f"Email extraction cancelled after {len(emails)} item(s)")
                break
            try:
                email = self._extract_email(items.Item(i), mailbox_type)
            except Exception as e:
                logger.debug(f"Error extracting email at index {i}: {e}")
                continue
            emails.append(email)
        return emails

    def _extract_email(self, item: Any, mailbox_type: str) -> dict[str, Any]:
        recipients = []
        try:
            recips = item.Recipients
            for r in range(1, recips.Count + 1):
                name = _safe_get(recips.Item(r), "Name")
                if name:
                    recipients.append(str(name))
        except Exception as e:
            logger.debug(f"Error reading recipients: {e}")

        body = _safe_get(item, "Body")
        if body is not None:
            body = strip_html(str(body))
            if len(body) > self.config.max_body_chars:
                body = body[: self.config.max_body_chars] + "... [truncated]"

        return {
            "subject": _safe_get(item, "Subject"),
            "sender_name": _safe_get(item, "SenderName"),
            "sender_email": _safe_get(item, "SenderEmailAddress"),
            "received_time": _format_time(_safe_get(item, "ReceivedTime")),
            "mailbox_type": mailbox_type,
            "importance": _safe_get(item, "Importance") or 0,
            "unread": bool(_safe_get(item, "UnRead")),
            "attachments_count": _safe_get(item, "Attachments.Count") or 0,
            "entry_id": _safe_get(item, "EntryID"),
            "recipients": recipients,
            "body": body,
        }
