#!/usr/bin/python3
"""privlog — enable and verify private/debug logging on macOS.

Writes a logging profile, switches the unified logging system to debug level
with private data capture, restarts logd and then checks that private fields
are no longer redacted.  One remediation pass is attempted when the first
verification fails.

With --collect it instead reads recent XProtect log events, drops routine
messages and reports the rest.
"""

import argparse
import json
import os
import plistlib
import re
import subprocess
import sys
import threading
import time
import uuid
from contextlib import redirect_stdout
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import NamedTuple
from xml.parsers.expat import ExpatError

# ── Constants ────────────────────────────────────────────────────────────────

PROFILE_ROOT = Path("/Library/Preferences/Logging")
PROFILE_FILENAME = "private_logging.plist"
PROFILE_MODE = 0o644

SYSTEM_LOGGING_DOMAIN = "com.apple.system.logging"
TARGET_SUBSYSTEM = "com.apple.XProtect"
LOGD_PROCESS = "logd"

PROFILE_IDENTIFIER = "com.security.logging"
PROFILE_TYPE = "Configuration"
PROFILE_VERSION = 1

DEFAULT_LEVEL = "Debug"
DEFAULT_CATEGORIES = ("behavior", "scanner")

SETTLE_SECONDS = 2
RESTART_SETTLE_SECONDS = 2
REENABLE_SETTLE_SECONDS = 1

STATUS_DEBUG = "DEBUG"
STATUS_PRIVATE = "PRIVATE_DATA"
STATUS_LIVE = "STREAM_LIVE"

# As printed by `defaults read`; compared with all whitespace removed.
REQUIRED_SETTINGS = (
    '"Enable-Logging" = 1',
    '"Category-Default-Enabled" = 1',
    "Level = Debug",
    "Private = 1",
)

REDACTED_MARKER = "<private>"
SAMPLE_WINDOW = "1m"

REPORT_FORMATS = ("text", "json")

COLLECT_MATCH = "xprotect"
COLLECT_WINDOW = "1h"

# Routine XProtect chatter that is never a risk event.
BENIGN_PHRASES = (
    "Already up to date",
    "Using XProtect rules location",
    "Forwarding detection succeeded",
    "JETSAM_REASON_MEMORY_IDLE_EXIT",
    "shutting down",
    "cleaning up",
    "XPC connection invalidated",
    "Waiting for launchd to call us",
)


# ── Nerd Font icons ──────────────────────────────────────────────────────────

class _I:
    ROCKET   = "\uf135"
    CHECK    = "\uf058"   # check-circle
    OK       = "\uf00c"   # check
    WARN     = "\uf071"   # exclamation-triangle
    ERROR    = "\uf057"   # times-circle
    EYE      = "\uf06e"   # eye (dry-run)
    SKIP     = "\uf04e"   # forward
    BUG      = "\uf188"   # bug (debug output)
    SHIELD   = "\uf132"   # shield
    FILE     = "\uf0f6"   # file-text
    WRENCH   = "\uf0ad"   # wrench
    RECYCLE  = "\uf1b8"   # recycle (restart)
    SEARCH   = "\uf002"   # search
    UNDO     = "\uf0e2"   # rotate-left (retry)
    CLOCK    = "\uf017"   # clock


# ── ANSI helpers ─────────────────────────────────────────────────────────────

class _C:
    BOLD   = "\033[1m"
    DIM    = "\033[2m"
    GREEN  = "\033[32m"
    YELLOW = "\033[33m"
    RED    = "\033[31m"
    CYAN   = "\033[36m"
    RESET  = "\033[0m"

# TTY check runs once at import time against the real stdout.
if not sys.stdout.isatty():
    _C.BOLD = _C.DIM = _C.GREEN = _C.YELLOW = _C.RED = ""
    _C.CYAN = _C.RESET = ""


def _banner(title: str) -> None:
    print(f"\n{_C.BOLD}{_C.CYAN}{'─' * 60}")
    print(f"  {title}")
    print(f"{'─' * 60}{_C.RESET}")


def _section(icon: str, title: str, step: int, total: int) -> None:
    tag = f"{_C.DIM}[{step}/{total}]{_C.RESET}"
    print(f"\n{_C.BOLD}{_C.CYAN}{'─' * 60}")
    print(f"  {icon}  {title}  {tag}")
    print(f"{'─' * 60}{_C.RESET}")


def _info(msg: str) -> None:
    print(f"  {_C.GREEN}{_I.OK}{_C.RESET}  {msg}")


def _warn(msg: str) -> None:
    print(f"  {_C.YELLOW}{_I.WARN}{_C.RESET}  {msg}")


def _error(msg: str) -> None:
    print(f"  {_C.RED}{_I.ERROR}{_C.RESET}  {msg}", file=sys.stderr)


def _skip(msg: str) -> None:
    print(f"  {_C.DIM}{_I.SKIP}  {msg}{_C.RESET}")


def _dry(msg: str) -> None:
    print(f"  {_C.YELLOW}{_I.EYE}  [DRY RUN]{_C.RESET} {msg}")


def _debug(label: str, text: str) -> None:
    """Print captured command output, indented, in dim text."""
    body = text.rstrip() or "(empty)"
    print(f"  {_C.DIM}{_I.BUG}  {label}:{_C.RESET}")
    for line in body.splitlines():
        print(f"  {_C.DIM}    {line}{_C.RESET}")


# ── Errors ───────────────────────────────────────────────────────────────────

class LoggingError(Exception):
    """Base class for everything privlog raises."""


class PrivilegeError(LoggingError, PermissionError):
    """The caller is not root."""


class ProfileError(LoggingError):
    """The logging profile could not be built, encoded or decoded."""


class CommandError(LoggingError):
    """An OS utility could not be launched (or, in strict mode, failed)."""


class WriteError(LoggingError):
    """The profile or report could not be written to disk."""


class ConfigError(LoggingError):
    """Invalid privlog configuration (flags or constructor arguments)."""


# ── Privilege guard ──────────────────────────────────────────────────────────

def verify_root() -> None:
    if os.geteuid() != 0:
        raise PrivilegeError("privlog must run as root (try: sudo privlog)")


# ── Profile model ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SubsystemConfig:
    """Desired logging policy for one subsystem."""

    subsystem: str
    level: str = DEFAULT_LEVEL
    private_data: bool = True
    categories: tuple = DEFAULT_CATEGORIES

    def __post_init__(self):
        if not isinstance(self.subsystem, str) or not self.subsystem.strip():
            raise ProfileError(f"invalid subsystem name: {self.subsystem!r}")
        object.__setattr__(self, "categories", tuple(self.categories))

    def to_payload(self) -> dict:
        return {
            "subsystem": self.subsystem,
            "level": self.level,
            "private_data": self.private_data,
            "categories": list(self.categories),
        }

    @classmethod
    def from_payload(cls, entry) -> "SubsystemConfig":
        try:
            return cls(
                subsystem=entry["subsystem"],
                level=entry["level"],
                private_data=entry["private_data"],
                categories=tuple(entry["categories"]),
            )
        except (KeyError, TypeError) as exc:
            raise ProfileError(f"malformed subsystem entry: {entry!r}") from exc


@dataclass(frozen=True)
class LoggingProfile:
    """The configuration document written for one enable run.

    Identifier, payload type and version are fixed; only the subsystem list
    and the per-instance UUID vary.
    """

    subsystems: tuple
    payload_uuid: str = field(default_factory=lambda: str(uuid.uuid4()))
    identifier: str = field(default=PROFILE_IDENTIFIER, init=False)
    payload_type: str = field(default=PROFILE_TYPE, init=False)
    version: int = field(default=PROFILE_VERSION, init=False)

    def __post_init__(self):
        object.__setattr__(self, "subsystems", tuple(self.subsystems))

    def to_payload(self) -> dict:
        return {
            "PayloadContent": [c.to_payload() for c in self.subsystems],
            "PayloadIdentifier": self.identifier,
            "PayloadUUID": self.payload_uuid,
            "PayloadType": self.payload_type,
            "PayloadVersion": self.version,
        }

    def dumps(self) -> bytes:
        """Encode as an XML property list."""
        try:
            return plistlib.dumps(self.to_payload(), fmt=plistlib.FMT_XML)
        except (TypeError, ValueError, OverflowError) as exc:
            raise ProfileError(f"cannot encode profile: {exc}") from exc

    @classmethod
    def loads(cls, data: bytes) -> "LoggingProfile":
        try:
            doc = plistlib.loads(data)
        except (ValueError, ExpatError) as exc:
            raise ProfileError(f"cannot decode profile: {exc}") from exc
        if not isinstance(doc, dict):
            raise ProfileError("profile document is not a dictionary")

        for key, expected in (("PayloadIdentifier", PROFILE_IDENTIFIER),
                              ("PayloadType", PROFILE_TYPE),
                              ("PayloadVersion", PROFILE_VERSION)):
            if doc.get(key) != expected:
                raise ProfileError(
                    f"unexpected {key}: {doc.get(key)!r} (wanted {expected!r})"
                )
        if "PayloadUUID" not in doc or "PayloadContent" not in doc:
            raise ProfileError("profile is missing PayloadUUID or PayloadContent")
        if not isinstance(doc["PayloadContent"], list):
            raise ProfileError("PayloadContent is not a list")

        return cls(
            subsystems=tuple(SubsystemConfig.from_payload(e)
                             for e in doc["PayloadContent"]),
            payload_uuid=doc["PayloadUUID"],
        )


def build_profile(subsystems) -> LoggingProfile:
    """One SubsystemConfig per name, input order kept, duplicates included."""
    if isinstance(subsystems, str):
        raise ProfileError("expected a list of subsystem names, got a string")
    return LoggingProfile(tuple(SubsystemConfig(name) for name in subsystems))


# ── Command execution ────────────────────────────────────────────────────────

class CommandResult(NamedTuple):
    returncode: int
    stdout: str
    stderr: str


class CommandRunner:
    """Run OS utilities and capture their output, or print them with --dry-run.

    With --quiet the "Running:" echo is suppressed; warnings and errors still
    print.  With --debug the captured stdout/stderr of every command is shown.
    A non-zero exit status only warns unless *strict* is set, in which case it
    raises CommandError.
    """

    def __init__(self, dry_run: bool = False, quiet: bool = False,
                 debug: bool = False, strict: bool = False, sleep=time.sleep):
        self.dry_run = dry_run
        self.quiet = quiet
        self.debug = debug
        self.strict = strict
        self._sleep = sleep

    def run(self, program: str, args=()) -> CommandResult:
        cmd = [program, *args]
        pretty = " ".join(cmd)
        if self.dry_run:
            _dry(pretty)
            return CommandResult(0, "", "")
        if not self.quiet:
            _info(f"Running: {pretty}")
        try:
            proc = subprocess.run(
                cmd, capture_output=True, text=True, errors="replace",
            )
        except OSError as exc:
            raise CommandError(f"cannot run {program}: {exc}") from exc

        result = CommandResult(proc.returncode, proc.stdout or "", proc.stderr or "")
        if self.debug:
            _debug(f"{program} stdout", result.stdout)
            if result.stderr.strip():
                _debug(f"{program} stderr", result.stderr)
        if result.returncode != 0:
            if self.strict:
                detail = result.stderr.strip() or "no stderr"
                raise CommandError(
                    f"{pretty} exited {result.returncode}: {detail}"
                )
            _warn(f"  ↳ exited {result.returncode}: {pretty}")
        return result

    def wait(self, seconds: float) -> None:
        if self.dry_run:
            _dry(f"sleep {seconds}")
            return
        if not self.quiet:
            _info(f"{_I.CLOCK}  Waiting {seconds}s")
        self._sleep(seconds)


# ── Profile writer ───────────────────────────────────────────────────────────

def write_profile(profile: LoggingProfile, root: Path,
                  dry_run: bool = False) -> Path:
    """Write *profile* to ``root/private_logging.plist`` with mode 0644."""
    path = Path(root) / PROFILE_FILENAME
    data = profile.dumps()
    if dry_run:
        _dry(f"write {path} ({len(profile.subsystems)} subsystems, "
             f"uuid {profile.payload_uuid})")
        return path

    tmp = path.with_suffix(".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp, "wb") as fh:
            fh.write(data)
        tmp.rename(path)
        os.chmod(path, PROFILE_MODE)
    except OSError as exc:
        if tmp.exists():
            tmp.unlink()
        raise WriteError(f"cannot write profile {path}: {exc}") from exc
    return path


# ── Config applier ───────────────────────────────────────────────────────────

class ConfigApplier:
    """Write the profile and push the logging preferences into place.

    Each step is an ordered list of commands.  The first command that cannot
    be launched aborts the rest; whatever was already written stays written.
    """

    def __init__(self, runner: CommandRunner, root: Path,
                 target: str = TARGET_SUBSYSTEM):
        self.runner = runner
        self.root = Path(root)
        self.target = target

    def domain(self, name: str) -> str:
        return str(self.root / name)

    def system_commands(self) -> list:
        return [
            ("log", ["config", "--mode", "level:debug"]),
            ("defaults", ["write", self.domain(SYSTEM_LOGGING_DOMAIN),
                          "System.Private-Data", "-bool", "true"]),
        ]

    def parameter_commands(self) -> list:
        domain = self.domain(self.target)
        return [
            ("defaults", ["write", domain, "Enable-Logging", "-bool", "true"]),
            ("defaults", ["write", domain, "Level", "-string", DEFAULT_LEVEL]),
            ("defaults", ["write", domain, "Private", "-bool", "true"]),
            ("defaults", ["write", domain, "Category-Default-Enabled",
                          "-bool", "true"]),
        ]

    def apply(self, profile: LoggingProfile) -> Path:
        path = write_profile(profile, self.root, dry_run=self.runner.dry_run)
        if not self.runner.dry_run:
            _info(f"{_I.FILE}  Profile written to {path}")
        self.apply_system_config()
        self.set_logging_parameters()
        return path

    def apply_system_config(self) -> None:
        """Debug level plus System.Private-Data in the system logging domain."""
        for program, args in self.system_commands():
            self.runner.run(program, args)

    def set_logging_parameters(self) -> None:
        """The four preference keys for the target subsystem."""
        for program, args in self.parameter_commands():
            self.runner.run(program, args)


# ── Service restart ──────────────────────────────────────────────────────────

def restart_logging_service(runner: CommandRunner) -> None:
    """Cycle logd so the new preferences are picked up.

    launchd respawns logd after the kill; nothing here relaunches it.
    """
    runner.run("log", ["config", "--mode", "level:default"])
    runner.run("killall", [LOGD_PROCESS])
    runner.wait(RESTART_SETTLE_SECONDS)
    runner.run("log", ["config", "--mode", "level:debug"])
    runner.wait(REENABLE_SETTLE_SECONDS)


# ── Verification ─────────────────────────────────────────────────────────────

def _squash(text: str) -> str:
    return text.replace(" ", "").replace("\n", "").replace("\t", "")


def missing_settings(defaults_output: str) -> list:
    """Return the REQUIRED_SETTINGS absent from a `defaults read` dump."""
    haystack = _squash(defaults_output)
    return [s for s in REQUIRED_SETTINGS if _squash(s) not in haystack]


class ConfigVerifier:
    """Three ordered checks; the first failing one ends verification."""

    def __init__(self, runner: CommandRunner, root: Path,
                 target: str = TARGET_SUBSYSTEM):
        self.runner = runner
        self.root = Path(root)
        self.target = target

    def verify(self) -> bool:
        if not self.check_system_status():
            _warn("System logging status check failed")
            return False
        if not self.check_subsystem_settings():
            _warn(f"{self.target} settings check failed")
            return False
        if not self.check_private_logs():
            _warn("Private log accessibility check failed")
            return False
        _info(f"{_I.CHECK}  Private logging verified for {self.target}")
        return True

    def _status_flags(self) -> tuple:
        status = self.runner.run("log", ["config", "--status"]).stdout
        return (STATUS_DEBUG in status, STATUS_PRIVATE in status,
                STATUS_LIVE in status)

    def check_system_status(self) -> bool:
        has_debug, has_private, is_live = self._status_flags()
        if not self.runner.quiet:
            _info(f"Status: debug={has_debug} private={has_private} "
                  f"live={is_live}")
        return has_debug and has_private

    def check_subsystem_settings(self) -> bool:
        out = self.runner.run("defaults",
                              ["read", str(self.root / self.target)]).stdout
        missing = missing_settings(out)
        for setting in missing:
            _warn(f"Missing setting in {self.target}: {setting}")

        has_debug, has_private, _ = self._status_flags()
        return not missing and has_debug and has_private

    def check_private_logs(self) -> bool:
        sample = self.runner.run("log", [
            "show",
            "--predicate", f"subsystem == '{self.target}'",
            "--style", "json",
            "--debug",
            "--last", SAMPLE_WINDOW,
        ]).stdout
        if not sample.strip():
            _warn(f"No log entries for {self.target} in the last {SAMPLE_WINDOW}")
            return False
        if REDACTED_MARKER in sample:
            _warn(f"Log entries still contain {REDACTED_MARKER} fields")
            return False
        return True


# ── Log manager ──────────────────────────────────────────────────────────────

class Outcome(Enum):
    VERIFIED = "verified"
    VERIFIED_AFTER_RETRY = "verified-after-retry"
    UNVERIFIED = "unverified"


class LogManager:
    """Enable/verify workflow.  One operation at a time per instance."""

    STEPS = 5

    def __init__(self, profile_root=PROFILE_ROOT, target: str = TARGET_SUBSYSTEM,
                 runner: CommandRunner = None, settle_attempts: int = 1):
        if settle_attempts < 1:
            raise ConfigError(f"settle_attempts must be >= 1, got {settle_attempts}")
        if not target:
            raise ConfigError("target subsystem must not be empty")
        self.profile_root = Path(profile_root)
        self.target = target
        self.runner = runner or CommandRunner()
        self.settle_attempts = settle_attempts
        self.applier = ConfigApplier(self.runner, self.profile_root, target)
        self.verifier = ConfigVerifier(self.runner, self.profile_root, target)
        self._lock = threading.Lock()
        self._step = 0

    @property
    def profile_path(self) -> Path:
        return self.profile_root / PROFILE_FILENAME

    def _next_step(self, icon: str, title: str) -> None:
        self._step += 1
        _section(icon, title, self._step, self.STEPS)

    def enable_private_logging(self, subsystems) -> Outcome:
        """Apply the profile, restart logd and verify.

        Errors before verification propagate.  A failed verification is not
        an error: it triggers one re-apply and is reported via the Outcome.
        """
        with self._lock:
            self._step = 0
            return self._enable(subsystems)

    def _enable(self, subsystems) -> Outcome:
        self._next_step(_I.SHIELD, "Privileges")
        if self.runner.dry_run:
            _skip("Root check skipped (--dry-run)")
        else:
            verify_root()
            _info("Root privileges verified")

        self._next_step(_I.FILE, "Profile")
        profile = build_profile(subsystems)
        if not profile.subsystems:
            _warn("No subsystems given; writing an empty profile")
        for config in profile.subsystems:
            _info(f"Profile entry: {config.subsystem} "
                  f"(level={config.level}, private={config.private_data})")

        self._next_step(_I.WRENCH, "Apply configuration")
        self.applier.apply(profile)
        _info("Configuration applied")

        self._next_step(_I.RECYCLE, "Restart logging service")
        restart_logging_service(self.runner)
        _info("Logging service restarted")

        self._next_step(_I.SEARCH, "Verify")
        if self._settle_and_verify():
            return Outcome.VERIFIED

        _warn("Initial verification failed, re-applying settings")
        _info(f"{_I.UNDO}  Remediation pass")
        self.applier.apply_system_config()
        self.applier.set_logging_parameters()
        if self.verifier.verify():
            return Outcome.VERIFIED_AFTER_RETRY

        _warn("Verification still failing after retry")
        return Outcome.UNVERIFIED

    def _settle_and_verify(self) -> bool:
        """Wait, then verify; with settle_attempts > 1, back off and retry."""
        delay = SETTLE_SECONDS
        for attempt in range(1, self.settle_attempts + 1):
            self.runner.wait(delay)
            if self.verifier.verify():
                return True
            if attempt < self.settle_attempts:
                _info(f"Verification attempt {attempt}/{self.settle_attempts} "
                      f"failed, backing off")
            delay *= 2
        return False

    def verify_config(self) -> bool:
        """True only when all three checks pass; CommandError if one can't run."""
        with self._lock:
            return self.verifier.verify()


# ── Event collection ─────────────────────────────────────────────────────────

def is_benign(message: str) -> bool:
    return any(phrase in message for phrase in BENIGN_PHRASES)


def _risk_event(entry: dict) -> dict:
    image = entry.get("processImagePath") or ""
    return {
        "date": entry.get("timestamp"),
        "process": Path(image).name or None,
        "subsystem": entry.get("subsystem"),
        "category": entry.get("category"),
        "message": entry.get("eventMessage") or "",
    }


def collect_events(runner: CommandRunner, match: str = COLLECT_MATCH,
                   window: str = COLLECT_WINDOW) -> list:
    """Recent log events from subsystems whose name contains *match*.

    Only plain log events are kept (no activities or signposts), and
    messages containing one of BENIGN_PHRASES are dropped.  *window* is a
    `log show --last` value such as ``30m`` or ``1h``.
    """
    if not re.fullmatch(r"\d+[smhd]", window):
        raise ConfigError(f"invalid look-back window: {window!r} (e.g. 30m, 1h)")
    if not match or '"' in match:
        raise ConfigError(f"invalid subsystem match: {match!r}")

    out = runner.run("log", [
        "show",
        "--predicate", f'subsystem CONTAINS[c] "{match}"',
        "--style", "json",
        "--last", window,
    ]).stdout
    if not out.strip():
        return []
    try:
        entries = json.loads(out)
    except ValueError as exc:
        raise CommandError(f"cannot parse log show output: {exc}") from exc
    if not isinstance(entries, list):
        raise CommandError("log show did not return a JSON array")

    events = []
    dropped = 0
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        if entry.get("eventType", "logEvent") != "logEvent":
            continue
        if is_benign(entry.get("eventMessage") or ""):
            dropped += 1
            continue
        events.append(_risk_event(entry))
    _info(f"{len(events)} event(s) kept, {dropped} routine message(s) dropped")
    return events


# ── Reports ──────────────────────────────────────────────────────────────────

def _format_value(value) -> str:
    if value is None:
        return "-"
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value) or "-"
    return str(value)


def render_report(report: dict, fmt: str = "text") -> str:
    if fmt == "json":
        return json.dumps(report, indent=2) + "\n"
    if fmt != "text":
        raise ConfigError(f"unknown report format: {fmt}")
    width = max(len(key) for key in report)
    return "".join(f"{key:<{width}}  {_format_value(value)}\n"
                   for key, value in report.items())


def render_events(events: list, fmt: str = "text") -> str:
    if fmt == "json":
        return json.dumps(events, indent=2) + "\n"
    if fmt != "text":
        raise ConfigError(f"unknown report format: {fmt}")
    return "".join(
        "  ".join(_format_value(e.get(key))
                  for key in ("date", "process", "category", "message")) + "\n"
        for e in events
    )


def write_report(text: str, output=None, stream=None) -> None:
    if output is None:
        (stream or sys.stdout).write(text)
        return
    try:
        Path(output).write_text(text)
    except OSError as exc:
        raise WriteError(f"cannot write report {output}: {exc}") from exc


# ── CLI ──────────────────────────────────────────────────────────────────────

def parse_subsystems(values) -> list:
    """Flatten repeated, comma-separated -s values; blank fragments dropped."""
    names = []
    for value in values or []:
        names.extend(part.strip() for part in value.split(",") if part.strip())
    return names


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="privlog",
        description="Enable and verify private/debug logging on macOS.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
examples:
  sudo privlog                                   # XProtect, text report
  sudo privlog -s com.apple.XProtect,com.apple.syspolicy
  sudo privlog -d                                # verify again and show command output
  privlog --verify                               # check only, no changes
  privlog --dry-run                              # preview commands
  privlog --collect --last 30m -f json           # recent XProtect events as JSON
  sudo privlog -f json -o /tmp/privlog.json      # JSON report to a file
""",
    )
    p.add_argument(
        "-s", "--subsystems", action="append", metavar="LIST",
        help="comma-separated subsystems to put in the profile "
             "(repeatable; default: the target subsystem)",
    )
    p.add_argument(
        "-f", "--format", choices=REPORT_FORMATS, default="text",
        help="report format: text (default) or json",
    )
    p.add_argument(
        "-o", "--output", metavar="FILE",
        help="write the report to FILE instead of stdout",
    )
    p.add_argument(
        "-d", "--debug", action="store_true",
        help="show captured command output and run an explicit "
             "verification after enabling",
    )
    mode = p.add_mutually_exclusive_group()
    mode.add_argument(
        "-v", "--verify", action="store_true",
        help="only verify the current configuration",
    )
    mode.add_argument(
        "--collect", action="store_true",
        help="only collect recent events (routine messages dropped) "
             "from subsystems matching --match",
    )
    p.add_argument(
        "--last", default=COLLECT_WINDOW, metavar="WINDOW",
        help=f"look-back window for --collect (default: {COLLECT_WINDOW})",
    )
    p.add_argument(
        "--match", default=COLLECT_MATCH,
        help=f"case-insensitive subsystem substring for --collect "
             f"(default: {COLLECT_MATCH})",
    )
    p.add_argument(
        "--target", default=TARGET_SUBSYSTEM,
        help=f"subsystem whose preferences are set and checked "
             f"(default: {TARGET_SUBSYSTEM})",
    )
    p.add_argument(
        "--profile-dir", type=Path, default=PROFILE_ROOT,
        help=f"logging preferences directory (default: {PROFILE_ROOT})",
    )
    p.add_argument(
        "--settle-attempts", type=int, default=1, metavar="N",
        help="verify up to N times with doubling waits after the restart "
             "(default: 1, a single fixed wait)",
    )
    p.add_argument(
        "--strict", action="store_true",
        help="treat a non-zero exit status from any command as an error",
    )
    p.add_argument(
        "--dry-run", action="store_true",
        help="print commands without executing them",
    )
    p.add_argument(
        "-q", "--quiet", action="store_true",
        help="suppress per-command output; show only section banners, "
             "warnings, and errors",
    )
    return p


def _run_enable(manager: LogManager, subsystems: list, debug: bool) -> dict:
    _banner(f"{_I.ROCKET}  privlog — private logging for "
            f"{len(subsystems)} subsystem(s)")
    outcome = manager.enable_private_logging(subsystems)
    report = {
        "operation": "enable",
        "target": manager.target,
        "subsystems": subsystems,
        "profile": str(manager.profile_path),
        "outcome": outcome.value,
    }
    if debug:
        verified = manager.verify_config()
        if not verified:
            _warn("Configuration verification failed")
        report["verified"] = verified
    return report


def _run_verify(manager: LogManager) -> dict:
    _banner(f"{_I.SEARCH}  privlog --verify ({manager.target})")
    verified = manager.verify_config()
    if verified:
        _info("Private logging is properly configured")
    else:
        _warn("Private logging is not properly configured")
    return {
        "operation": "verify",
        "target": manager.target,
        "profile": str(manager.profile_path),
        "verified": verified,
    }


def _run_collect(runner: CommandRunner, match: str, window: str) -> list:
    _banner(f"{_I.SEARCH}  privlog --collect ({match}, last {window})")
    return collect_events(runner, match=match, window=window)


def main(argv=None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    runner = CommandRunner(
        dry_run=args.dry_run,
        quiet=args.quiet,
        debug=args.debug,
        strict=args.strict,
    )
    # A JSON report on stdout must be the only thing there.
    report_stream = sys.stdout
    if args.format == "json" and args.output is None:
        console = sys.stderr
    else:
        console = sys.stdout

    t0 = time.monotonic()
    try:
        with redirect_stdout(console):
            if args.collect:
                events = _run_collect(runner, args.match, args.last)
                text = render_events(events, args.format)
            else:
                manager = LogManager(
                    profile_root=args.profile_dir,
                    target=args.target,
                    runner=runner,
                    settle_attempts=args.settle_attempts,
                )
                if args.verify:
                    report = _run_verify(manager)
                else:
                    subsystems = parse_subsystems(args.subsystems) or [args.target]
                    report = _run_enable(manager, subsystems, args.debug)
                text = render_report(report, args.format)
        write_report(text, args.output, stream=report_stream)
    except LoggingError as exc:
        _error(str(exc))
        sys.exit(1)

    elapsed = time.monotonic() - t0
    with redirect_stdout(console):
        _banner(f"{_I.CHECK}  Done ({int(elapsed)}s)")


if __name__ == "__main__":
    main()
