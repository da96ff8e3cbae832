from __future__ import annotations

import os
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from textwrap import shorten
from typing import Sequence

from .logging_utils import get_logger


logger = get_logger(__name__)


# -----------------------------
# CLI progress indicator config
# -----------------------------
_cli_progress_lock = threading.Lock()
_cli_show_progress: bool = True
_cli_progress_idle_seconds: float = 2.0
_cli_progress_style: str = "braille"  # braille | ascii
_cli_progress_interval: float = 0.12


def configure_cli_progress(
    *,
    show_progress: bool | None = None,
    idle_seconds: float | None = None,
    style: str | None = None,
    interval: float | None = None,
) -> None:
    """
    전역 CLI 진행 표시 설정.

    CLI 엔트리포인트에서 옵션 값을 한 번 반영하기 위해 사용한다.
    """
    global _cli_show_progress, _cli_progress_idle_seconds, _cli_progress_style, _cli_progress_interval
    with _cli_progress_lock:
        if show_progress is not None:
            _cli_show_progress = bool(show_progress)
        if idle_seconds is not None:
            _cli_progress_idle_seconds = float(idle_seconds)
        if style is not None:
            _cli_progress_style = str(style)
        if interval is not None:
            _cli_progress_interval = float(interval)


def _is_tty(stream) -> bool:  # noqa: ANN001
    try:
        return bool(getattr(stream, "isatty") and stream.isatty())
    except Exception:  # noqa: BLE001
        return False


def _get_progress_defaults() -> tuple[bool, float, str, float]:
    with _cli_progress_lock:
        return (
            _cli_show_progress,
            _cli_progress_idle_seconds,
            _cli_progress_style,
            _cli_progress_interval,
        )


def _parse_env_bool(name: str) -> bool | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _parse_env_float(name: str) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return float(raw)
    except ValueError:
        return None


_BRAILLE_FRAMES = ["⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏"]
_ASCII_FRAMES = ["|", "/", "-", "\\"]


def _select_frames(style: str) -> list[str]:
    s = (style or "").strip().lower()
    if s == "ascii":
        return _ASCII_FRAMES
    return _BRAILLE_FRAMES


def _format_elapsed(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:0.1f}s"
    minutes = int(seconds // 60)
    sec = int(seconds % 60)
    return f"{minutes}m{sec:02d}s"


def _default_progress_message(cmd: Sequence[str]) -> str:
    return shorten(" ".join(cmd), width=72, placeholder="…")


class _IdleProgressIndicator:
    """
    명령이 idle_seconds 이상 끝나지 않을 때만 stderr 에 스피너 + 경과시간을 그린다.
    gcloud 의 IAM 호출은 대부분 1~2초 안에 끝나므로 짧은 명령에서는 아무것도 출력하지 않는다.
    """

    def __init__(
        self,
        *,
        message: str,
        stream=None,  # noqa: ANN001
        style: str = "braille",
        interval: float = 0.12,
        idle_seconds: float = 2.0,
    ) -> None:
        self._message = message
        self._stream = stream if stream is not None else sys.stderr
        self._frames = _select_frames(style)
        self._interval = max(float(interval), 0.02)
        self._idle_seconds = max(float(idle_seconds), 0.0)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_len = 0

    def _render(self, frame_idx: int, elapsed_seconds: float) -> None:
        frame = self._frames[frame_idx % len(self._frames)]
        text = f"{frame} {self._message}  {_format_elapsed(elapsed_seconds)}"
        self._last_len = max(self._last_len, len(text))
        self._stream.write("\r" + text)
        self._stream.flush()

    def start(self) -> None:
        if self._thread is not None:
            return
        started = time.monotonic()

        def _run() -> None:
            # idle 구간이 지나기 전에 명령이 끝나면 바로 빠져나간다.
            if self._stop.wait(self._idle_seconds):
                return
            idx = 0
            while not self._stop.is_set():
                self._render(idx, time.monotonic() - started)
                idx += 1
                self._stop.wait(self._interval)

        self._thread = threading.Thread(target=_run, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
        if self._last_len > 0:
            self._stream.write("\r" + (" " * self._last_len) + "\r")
            self._stream.flush()


@dataclass(frozen=True)
class RunResult:
    returncode: int
    stdout: str
    stderr: str


class CommandError(RuntimeError):
    """
    외부 명령(gcloud) 실행 실패.

    호출 측에서 stderr 내용(NOT_FOUND, ALREADY_EXISTS 등)을 보고 분기할 수 있도록
    원본 출력을 그대로 보관한다.
    """

    def __init__(
        self,
        message: str,
        *,
        cmd: Sequence[str],
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    @property
    def is_not_found(self) -> bool:
        text = self.stderr or self.stdout
        return "NOT_FOUND" in text

    @property
    def is_already_exists(self) -> bool:
        text = self.stderr or self.stdout
        return "ALREADY_EXISTS" in text


def run_command(
    cmd: Sequence[str],
    *,
    timeout: float | None = 900.0,
    spinner_message: str | None = None,
    show_progress: bool | None = None,
    progress_idle_seconds: float | None = None,
    progress_interval: float | None = None,
) -> RunResult:
    """
    subprocess 실행 공통 유틸.

    stdout/stderr 를 캡처하고, 실패 시 stderr 요약을 포함한 CommandError 를 던진다.
    """
    logger.info("명령 실행: %s", " ".join(cmd))

    # progress 설정(우선순위: 호출 인자 > env > 전역 기본값)
    default_show, default_idle, default_style, default_interval = _get_progress_defaults()
    env_show = _parse_env_bool("CLI_SHOW_PROGRESS")
    env_idle = _parse_env_float("CLI_PROGRESS_IDLE_SECONDS")

    effective_show = (
        bool(show_progress)
        if show_progress is not None
        else (env_show if env_show is not None else default_show)
    )
    effective_idle = (
        float(progress_idle_seconds)
        if progress_idle_seconds is not None
        else (env_idle if env_idle is not None else default_idle)
    )
    effective_style = os.getenv("CLI_PROGRESS_STYLE") or default_style
    effective_interval = (
        float(progress_interval) if progress_interval is not None else default_interval
    )

    indicator: _IdleProgressIndicator | None = None
    if effective_show and _is_tty(sys.stderr):
        indicator = _IdleProgressIndicator(
            message=spinner_message or _default_progress_message(cmd),
            stream=sys.stderr,
            style=effective_style,
            interval=effective_interval,
            idle_seconds=effective_idle,
        )
        indicator.start()

    try:
        result = subprocess.run(
            list(cmd),
            check=True,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        if result.stdout:
            logger.debug("명령 stdout: %s", shorten(result.stdout.strip(), width=2000))
        if result.stderr:
            logger.debug("명령 stderr: %s", shorten(result.stderr.strip(), width=2000))
        return RunResult(returncode=result.returncode, stdout=result.stdout or "", stderr=result.stderr or "")
    except FileNotFoundError as e:
        raise CommandError(
            f"필요한 명령을 찾을 수 없습니다: {cmd[0]} (gcloud CLI 가 설치되어 있는지 확인하세요)",
            cmd=cmd,
        ) from e
    except subprocess.TimeoutExpired as e:
        raise CommandError(
            f"명령 실행이 {timeout}초 안에 끝나지 않았습니다: {' '.join(cmd)}",
            cmd=cmd,
        ) from e
    except subprocess.CalledProcessError as e:
        stdout = (e.stdout or "").strip()
        stderr = (e.stderr or "").strip()
        detail = ""
        if stderr:
            detail = "\nstderr:\n" + shorten(stderr, width=2000)
        elif stdout:
            detail = "\nstdout:\n" + shorten(stdout, width=2000)
        raise CommandError(
            f"명령 실행 실패: {' '.join(cmd)} (exit={e.returncode}){detail}",
            cmd=cmd,
            returncode=e.returncode,
            stdout=stdout,
            stderr=stderr,
        ) from e
    finally:
        if indicator is not None:
            indicator.stop()
