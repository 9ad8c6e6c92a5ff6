"""
Durable client-side storage: the credential pair and the pending shared link.

File-backed stores write through a temp file and ``os.replace`` so a reader
never sees a half-written file, and the two tokens always change together.
"""

import json
import os
import tempfile
import threading
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Credentials:
    access_token: str
    refresh_token: str


class CredentialStore:
    def get(self) -> Optional[Credentials]:
        raise NotImplementedError

    def set(self, credentials: Credentials) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class MemoryCredentialStore(CredentialStore):
    def __init__(self, credentials: Optional[Credentials] = None):
        self._credentials = credentials

    def get(self) -> Optional[Credentials]:
        return self._credentials

    def set(self, credentials: Credentials) -> None:
        self._credentials = credentials

    def clear(self) -> None:
        self._credentials = None


class _JsonFile:
    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def read(self) -> dict:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except FileNotFoundError:
            return {}
        except (OSError, ValueError):
            # unreadable or corrupt file counts as empty
            return {}

    def write(self, data: dict) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        with self._lock:
            fd, tmp = tempfile.mkstemp(dir=directory, prefix=".tmp-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f)
                os.replace(tmp, self.path)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise

    def delete(self) -> None:
        with self._lock:
            try:
                os.unlink(self.path)
            except FileNotFoundError:
                pass


class FileCredentialStore(CredentialStore):
    def __init__(self, path: str):
        self._file = _JsonFile(path)

    def get(self) -> Optional[Credentials]:
        data = self._file.read()
        access, refresh = data.get("access_token"), data.get("refresh_token")
        if not access or not refresh:
            return None
        return Credentials(access_token=access, refresh_token=refresh)

    def set(self, credentials: Credentials) -> None:
        self._file.write({
            "access_token": credentials.access_token,
            "refresh_token": credentials.refresh_token,
        })

    def clear(self) -> None:
        self._file.delete()


class PendingLinkStore:
    """One URL shared into the app before the user signed in."""

    def get(self) -> Optional[str]:
        raise NotImplementedError

    def set(self, url: str) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class MemoryPendingLinkStore(PendingLinkStore):
    def __init__(self, url: Optional[str] = None):
        self._url = url

    def get(self) -> Optional[str]:
        return self._url

    def set(self, url: str) -> None:
        self._url = url

    def clear(self) -> None:
        self._url = None


class FilePendingLinkStore(PendingLinkStore):
    def __init__(self, path: str):
        self._file = _JsonFile(path)

    def get(self) -> Optional[str]:
        return self._file.read().get("pending_saved_link") or None

    def set(self, url: str) -> None:
        self._file.write({"pending_saved_link": url})

    def clear(self) -> None:
        self._file.delete()
