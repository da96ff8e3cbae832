import sys

import click

from .config import load_env_files, WifConfig
from .gcloud import GcloudClient
from .logging_utils import setup_logging, get_logger, echo_error, echo_success
from .orchestrator import apply_all, check_all, plan_all, summarize
from .subprocess_utils import configure_cli_progress


logger = get_logger(__name__)

ENV_TEMPLATE_NAME = "env.wif.example"


@click.group()
@click.option(
    "-C",
    "--chdir",
    "chdir",
    type=click.Path(file_okay=False, dir_okay=True, exists=True),
    default=".",
    help="env 파일(.env, .env.wif)이 있는 작업 디렉토리 (기본: 현재 디렉토리)",
)
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="로그 레벨을 DEBUG로 올립니다.",
)
@click.option(
    "--no-progress",
    is_flag=True,
    help="오래 걸리는 gcloud 명령의 진행 표시(스피너)를 끕니다.",
)
@click.pass_context
def main(ctx: click.Context, chdir: str, verbose: int, no_progress: bool) -> None:
    """GitHub Actions 용 GCP Workload Identity Federation 프로비저닝 CLI"""
    setup_logging(verbose)
    if no_progress:
        configure_cli_progress(show_progress=False)
    ctx.ensure_object(dict)
    ctx.obj["chdir"] = chdir
    ctx.obj["verbose"] = verbose


def _load_config_from_ctx(ctx: click.Context) -> WifConfig:
    base_dir: str = ctx.obj["chdir"]
    load_env_files(base_dir)
    cfg = WifConfig.from_env()
    logger.debug("Config loaded: %s", cfg)
    return cfg


def _load_config_or_exit(ctx: click.Context) -> WifConfig:
    try:
        return _load_config_from_ctx(ctx)
    except ValueError as e:
        echo_error(f"설정 로드 실패: {e}")
        sys.exit(1)


@main.command()
@click.pass_context
def plan(ctx: click.Context) -> None:
    """현재 설정과 실행될 단계를 출력 (GCP 호출 없음)"""
    cfg = _load_config_or_exit(ctx)
    click.echo(plan_all(cfg))


@main.command()
@click.option(
    "--trace",
    is_flag=True,
    help="각 gcloud 명령을 실행 직전에 출력합니다.",
)
@click.pass_context
def apply(ctx: click.Context, trace: bool) -> None:
    """서비스 계정 / Workload Identity Pool / Provider / trust binding 을 실제로 생성"""
    cfg = _load_config_or_exit(ctx)
    client = GcloudClient(trace=trace)

    result = apply_all(cfg, client)
    click.echo(summarize(cfg, result))

    if not result.ok:
        # gcloud 에러 메시지를 가공하지 않고 그대로 보여준다.
        echo_error(f"'{result.failed_stage}' 단계에서 실패했습니다: {result.error}")
        sys.exit(1)

    echo_success("모든 단계를 완료했습니다")


@main.command()
@click.option(
    "-a",
    "--all",
    "show_all",
    is_flag=True,
    help="모든 체크 항목의 상세 상태를 출력합니다. (기본은 이슈만 요약)",
)
@click.pass_context
def check(ctx: click.Context, show_all: bool) -> None:
    """
    apply 전에 프로젝트/리소스 상태를 점검한다.
    (리소스 생성/변경은 하지 않는다)
    """
    cfg = _load_config_or_exit(ctx)

    try:
        report, has_issues = check_all(cfg, GcloudClient(), show_all=show_all)
    except Exception as e:  # noqa: BLE001
        logger.exception("사전 체크 중 오류 발생")
        echo_error(f"체크 실패: {e}")
        sys.exit(1)

    click.echo(report)

    if has_issues:
        sys.exit(1)


@main.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """
    현재 디렉토리에 env 템플릿(env.wif.example)을 복사한다.
    """
    import os
    from importlib import resources

    base_dir: str = ctx.obj["chdir"]
    target = os.path.join(base_dir, ENV_TEMPLATE_NAME)
    if os.path.exists(target):
        click.echo(f"{ENV_TEMPLATE_NAME} 이(가) 이미 존재하여 건너뜀")
        return

    try:
        with resources.files("wif_kit.examples").joinpath(ENV_TEMPLATE_NAME).open("r", encoding="utf-8") as src, open(
            target, "w", encoding="utf-8"
        ) as dst:
            dst.write(src.read())
        click.echo(f"{ENV_TEMPLATE_NAME} 템플릿을 생성했습니다. .env.wif 로 이름을 바꾼 뒤 값을 채우세요.")
    except FileNotFoundError:
        click.echo(f"템플릿 {ENV_TEMPLATE_NAME} 을(를) 패키지에서 찾을 수 없습니다.", err=True)
        sys.exit(1)
