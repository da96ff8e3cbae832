import logging
import sys

import click


def setup_logging(verbosity: int = 0) -> None:
    level = logging.INFO
    if verbosity >= 1:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


# 사람이 읽는 상태 라인 (로그와 별개로 항상 출력)
def echo_success(message: str) -> None:
    click.secho(f"[SUCCESS] {message}", fg="green")


def echo_info(message: str) -> None:
    click.secho(f"[INFO] {message}", fg="blue")


def echo_warning(message: str) -> None:
    click.secho(f"[WARNING] {message}", fg="yellow", err=True)


def echo_error(message: str) -> None:
    click.secho(f"[ERROR] {message}", fg="red", err=True)


def echo_trace(command: str) -> None:
    # set -x 와 비슷하게 실행 직전 명령을 회색으로 보여준다.
    click.secho(f"+ {command}", fg="bright_black", err=True)
