"""Resolve the application that currently owns the foreground window."""

from __future__ import annotations

import ctypes
import logging
import ntpath
import os
import struct
import sys
from typing import Callable, Optional, Protocol

import psutil

from .models import normalize_application_name

logger = logging.getLogger(__name__)

VersionReader = Callable[[str], dict[str, str]]

_NAME_SOURCES = ("FileDescription", "ProductName")
_FALLBACK_CODEPAGES = ("040904b0", "040904e4", "04090000")


class UnsupportedPlatformError(RuntimeError):
    """Raised when foreground detection is not available on this OS."""


class IdentityResolver(Protocol):
    def resolve_current_identity(self) -> Optional[str]:
        ...


class ForegroundProbe(Protocol):
    def foreground_pid(self) -> Optional[int]:
        ...


class WindowsForegroundProbe:
    """Retrieves the process id owning the foreground window."""

    def __init__(self) -> None:
        if sys.platform != "win32":
            raise UnsupportedPlatformError(
                "Foreground window detection is only available on Windows."
            )
        self._user32 = ctypes.windll.user32  # type: ignore[attr-defined]

    def foreground_pid(self) -> Optional[int]:
        from ctypes import wintypes

        hwnd = self._user32.GetForegroundWindow()
        if not hwnd:
            return None
        pid = wintypes.DWORD()
        self._user32.GetWindowThreadProcessId(hwnd, ctypes.byref(pid))
        return pid.value or None


def read_windows_version_strings(path: str) -> dict[str, str]:
    """Read FileDescription/ProductName from an executable's version resource."""
    from ctypes import wintypes

    version = ctypes.windll.version  # type: ignore[attr-defined]
    size = version.GetFileVersionInfoSizeW(path, None)
    if not size:
        return {}
    buffer = ctypes.create_string_buffer(size)
    if not version.GetFileVersionInfoW(path, 0, size, buffer):
        return {}

    pointer = ctypes.c_void_p()
    length = wintypes.UINT()
    codepages: list[str] = []
    if (
        version.VerQueryValueW(
            buffer, "\\VarFileInfo\\Translation", ctypes.byref(pointer), ctypes.byref(length)
        )
        and length.value >= 4
    ):
        language, codepage = struct.unpack("<HH", ctypes.string_at(pointer.value, 4))
        codepages.append(f"{language:04x}{codepage:04x}")
    codepages.extend(cp for cp in _FALLBACK_CODEPAGES if cp not in codepages)

    strings: dict[str, str] = {}
    for key in _NAME_SOURCES:
        for codepage in codepages:
            query = f"\\StringFileInfo\\{codepage}\\{key}"
            if version.VerQueryValueW(
                buffer, query, ctypes.byref(pointer), ctypes.byref(length)
            ) and length.value:
                strings[key] = ctypes.wstring_at(pointer.value, length.value).rstrip("\0")
                break
    return strings


def default_os_directory() -> str:
    return os.environ.get("SystemRoot") or os.environ.get("windir") or "C:\\Windows"


def is_under_directory(path: str, directory: str) -> bool:
    """Case-insensitive check that ``path`` lies inside ``directory``."""
    normalized_dir = ntpath.normcase(ntpath.normpath(directory)).rstrip("\\")
    normalized_path = ntpath.normcase(ntpath.normpath(path))
    return normalized_path.startswith(normalized_dir + "\\")


def executable_base_name(value: str) -> str:
    base = ntpath.basename(value)
    stem, ext = ntpath.splitext(base)
    return stem if ext.lower() == ".exe" and stem else base


class ForegroundIdentityResolver:
    """Map the foreground window's owning process to a display name.

    Names come from the executable's FileDescription, then its ProductName,
    then the executable name. Executables under the OS directory resolve to
    ``None`` while ``ignore_os_apps`` is set.
    """

    def __init__(
        self,
        *,
        ignore_os_apps: bool = True,
        probe: Optional[ForegroundProbe] = None,
        version_reader: Optional[VersionReader] = None,
        os_directory: Optional[str] = None,
    ) -> None:
        self.ignore_os_apps = ignore_os_apps
        self._probe = probe or WindowsForegroundProbe()
        self._version_reader = version_reader or read_windows_version_strings
        self._os_directory = os_directory or default_os_directory()

    def resolve_current_identity(self) -> Optional[str]:
        try:
            pid = self._probe.foreground_pid()
        except OSError:
            logger.warning("Failed to query the foreground window.", exc_info=True)
            return None
        if not pid:
            return None
        return self.identity_for_pid(pid)

    def identity_for_pid(self, pid: int) -> Optional[str]:
        try:
            process = psutil.Process(pid)
        except psutil.Error:
            logger.debug("Foreground process %s is gone.", pid)
            return None

        try:
            exe_path = process.exe()
            if (
                self.ignore_os_apps
                and exe_path
                and is_under_directory(exe_path, self._os_directory)
            ):
                return None
            return self._friendly_name(exe_path) or normalize_application_name(
                executable_base_name(exe_path or process.name())
            )
        except (psutil.Error, OSError):
            # Access denied or the process exited mid-lookup.
            logger.debug("Falling back to process name for pid %s.", pid, exc_info=True)
            return self._fallback_name(process)

    def _friendly_name(self, exe_path: str) -> Optional[str]:
        if not exe_path:
            return None
        strings = self._version_reader(exe_path)
        for key in _NAME_SOURCES:
            name = normalize_application_name(strings.get(key))
            if name:
                return name
        return None

    @staticmethod
    def _fallback_name(process: psutil.Process) -> Optional[str]:
        try:
            return normalize_application_name(executable_base_name(process.name()))
        except psutil.Error:
            return None
