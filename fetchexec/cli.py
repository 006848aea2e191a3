"""
CLI 模块

命令行接口实现。
"""

import asyncio
import dataclasses
import json
import os
from pathlib import Path
from typing import List, Optional

import aiohttp
import click
import toml
import yaml
from loguru import logger

from fetchexec import __version__
from fetchexec.catalog import CATALOG, get_tool_options
from fetchexec.exceptions import ConfigurationError, FetchExecError
from fetchexec.logger import resolve_level, setup_logger
from fetchexec.models.options import FetchOptions
from fetchexec.orchestrator import FetchResult, fetch_executable
from fetchexec.reporter import JsonLinesReporter, LoggerReporter, Reporter

DEFAULT_MAX_CONCURRENT = 4


def load_config(config_path: str) -> dict:
    """加载配置文件"""
    path = Path(config_path)

    if not path.exists():
        raise click.ClickException(f"配置文件不存在: {config_path}")

    suffix = path.suffix.lower()

    if suffix == ".toml":
        return toml.load(config_path)
    elif suffix == ".json":
        return json.loads(path.read_text())
    elif suffix in (".yaml", ".yml"):
        return yaml.safe_load(path.read_text())
    else:
        raise click.ClickException(f"不支持的配置文件格式: {suffix}")


def build_options(config: dict, reporter: Optional[Reporter] = None) -> List[FetchOptions]:
    """
    从配置构建下载请求列表

    每个 executables 条目可以是目录中的工具 {tool, target, version}，
    也可以是 FetchOptions.from_dict 支持的完整配置。
    """
    entries = config.get("executables") or []
    if not entries:
        raise ConfigurationError("配置中没有 executables")

    timeout = None
    if config.get("timeout") is not None:
        timeout = aiohttp.ClientTimeout(total=float(config["timeout"]))

    options_list: List[FetchOptions] = []
    seen_targets = set()
    for entry in entries:
        if entry.get("tool"):
            for key in ("target", "version"):
                if not entry.get(key):
                    raise ConfigurationError(
                        f"工具 {entry['tool']} 缺少配置项: {key}", context=dict(entry)
                    )
            options = get_tool_options(
                entry["tool"], str(entry["target"]), str(entry["version"]), reporter
            )
        else:
            options = FetchOptions.from_dict(entry, reporter=reporter)

        if options.timeout is None and timeout is not None:
            options = dataclasses.replace(options, timeout=timeout)

        target_key = os.path.abspath(options.target)
        if target_key in seen_targets:
            raise ConfigurationError(
                f"同一个 target 只能配置一次: {options.target}",
                context={"target": options.target},
            )
        seen_targets.add(target_key)
        options_list.append(options)

    return options_list


async def run_all(
    options_list: List[FetchOptions], max_concurrent: int = DEFAULT_MAX_CONCURRENT
) -> List[object]:
    """并发执行多个下载请求，返回每个请求的结果或异常"""
    semaphore = asyncio.Semaphore(max_concurrent)

    async with aiohttp.ClientSession() as session:

        async def _run(options: FetchOptions) -> FetchResult:
            async with semaphore:
                return await fetch_executable(options, session=session)

        return await asyncio.gather(
            *(_run(options) for options in options_list), return_exceptions=True
        )


@click.group()
@click.option("--debug", is_flag=True, help="启用调试模式")
@click.option("--json", "json_output", is_flag=True, help="以 JSON 行输出事件")
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context, debug: bool, json_output: bool):
    """fetchexec - 下载并校验可执行文件"""
    setup_logger(level=resolve_level(debug))
    reporter: Reporter = (
        JsonLinesReporter(verbose=debug) if json_output else LoggerReporter()
    )
    ctx.obj = {"reporter": reporter}


@main.command("list")
def list_tools():
    """列出目录中的工具"""
    for name in sorted(CATALOG):
        click.echo(name)


@main.command("tool")
@click.argument("name")
@click.argument("target", type=click.Path(dir_okay=False))
@click.argument("version")
@click.pass_context
def tool(ctx: click.Context, name: str, target: str, version: str):
    """下载目录中的工具 NAME 到 TARGET"""
    try:
        options = get_tool_options(name, target, version, ctx.obj["reporter"])
        asyncio.run(fetch_executable(options))
    except FetchExecError as e:
        logger.error(f"[错误] {e}")
        raise click.ClickException(str(e))


@main.command("sync")
@click.argument("config", type=click.Path(exists=True), default="executables.toml")
@click.option("--max-concurrent", type=int, default=None, help="最大并发下载数")
@click.pass_context
def sync(ctx: click.Context, config: str, max_concurrent: Optional[int]):
    """按配置文件下载所有可执行文件"""
    config_dict = load_config(config)
    try:
        options_list = build_options(config_dict, ctx.obj["reporter"])
    except FetchExecError as e:
        logger.error(f"配置错误: {e}")
        raise click.ClickException(str(e))

    limit = max_concurrent or config_dict.get("max_concurrent", DEFAULT_MAX_CONCURRENT)
    if not isinstance(limit, int) or limit <= 0:
        logger.warning(f"[警告] max_concurrent 配置无效，将使用默认值 {DEFAULT_MAX_CONCURRENT}。")
        limit = DEFAULT_MAX_CONCURRENT

    results = asyncio.run(run_all(options_list, limit))

    failed = 0
    for options, result in zip(options_list, results):
        if isinstance(result, BaseException):
            failed += 1
            logger.error(f"[错误] {options.target}: {result}")

    if failed:
        raise click.ClickException(f"{failed}/{len(options_list)} 个可执行文件处理失败")
    logger.success(f"完成! 处理了 {len(options_list)} 个可执行文件")


if __name__ == "__main__":
    main()
