"""
常用可执行文件目录

每个工具对应一个构建 FetchOptions 的函数。
"""

import re
from typing import Callable, Dict, Optional

import aiohttp

from fetchexec.exceptions import ConfigurationError
from fetchexec.models.options import (
    Extraction,
    FetchOptions,
    HashCheck,
    PlaceholderContext,
    VersionCheck,
)
from fetchexec.orchestrator import FetchResult, fetch_executable
from fetchexec.reporter import Reporter


def strip_prefix(output: str, prefix: str, tool: str) -> str:
    if not output.startswith(prefix):
        raise ValueError(f"{tool} version 输出格式不符合预期: {output!r}")
    return output[len(prefix):].strip()


def _kubectl_version(output: str) -> str:
    return strip_prefix(output, "Client Version: v", "kubectl")


def _sops_version(output: str) -> str:
    first_line = output.strip().split("\n")[0]
    return re.sub(r" .*", "", strip_prefix(first_line, "sops ", "sops"))


def _helmfile_version(output: str) -> str:
    return strip_prefix(output, "helmfile version v", "helmfile")


def _helm_version(output: str) -> str:
    return re.sub(r"\+.*$", "", strip_prefix(output, "v", "helm"))


def _minikube_version(output: str) -> str:
    return strip_prefix(output, "v", "minikube")


def _gomplate_version(output: str) -> str:
    return strip_prefix(output, "gomplate version ", "gomplate")


def _terraform_version(output: str) -> str:
    first_line = output.strip().split("\n")[0]
    return strip_prefix(first_line, "Terraform v", "terraform")


def kubectl(target: str, version: str, reporter: Optional[Reporter] = None) -> FetchOptions:
    return FetchOptions(
        target=target,
        url="https://dl.k8s.io/release/v{version}/bin/{platform}/{arch!x64ToAmd64}/kubectl",
        checks=(
            VersionCheck(
                version=version,
                exec_args=("version", "--client=true", "--short"),
                post_process=_kubectl_version,
            ),
            HashCheck(
                remote_hash_url="https://dl.k8s.io/v{version}/bin/{platform}/{arch!x64ToAmd64}/kubectl.sha256",
                method="sha256",
            ),
        ),
        reporter=reporter,
    )


def sops(target: str, version: str, reporter: Optional[Reporter] = None) -> FetchOptions:
    return FetchOptions.for_version(
        target,
        "https://github.com/mozilla/sops/releases/download/v{version}/sops-v{version}.{platform}",
        version,
        ["--version"],
        _sops_version,
        reporter=reporter,
    )


def helmfile(target: str, version: str, reporter: Optional[Reporter] = None) -> FetchOptions:
    return FetchOptions.for_version(
        target,
        "https://github.com/roboll/helmfile/releases/download/v{version}/helmfile_{platform}_{arch!x64ToAmd64}",
        version,
        ["--version"],
        _helmfile_version,
        reporter=reporter,
    )


def helm(target: str, version: str, reporter: Optional[Reporter] = None) -> FetchOptions:
    return FetchOptions.for_version(
        target,
        "https://get.helm.sh/helm-v{version}-{platform}-{arch!x64ToAmd64}.tar.gz",
        version,
        ["version", "--short"],
        _helm_version,
        extraction=Extraction(gzip=True, path_in_tar="{platform}-{arch!x64ToAmd64}/helm"),
        reporter=reporter,
    )


def eksctl(target: str, version: str, reporter: Optional[Reporter] = None) -> FetchOptions:
    return FetchOptions.for_version(
        target,
        "https://github.com/weaveworks/eksctl/releases/download/v{version}/eksctl_{platform!capitalize}_{arch!x64ToAmd64}.tar.gz",
        version,
        ["version"],
        extraction=Extraction(gzip=True, path_in_tar="eksctl"),
        reporter=reporter,
    )


def minikube(target: str, version: str, reporter: Optional[Reporter] = None) -> FetchOptions:
    return FetchOptions(
        target=target,
        url="https://storage.googleapis.com/minikube/releases/v{version}/minikube-{platform}-{arch!x64ToAmd64}",
        checks=(
            VersionCheck(
                version=version,
                exec_args=("version", "--short"),
                post_process=_minikube_version,
            ),
            HashCheck(
                remote_hash_url="https://github.com/kubernetes/minikube/releases/download/v{version}/minikube-{platform}-{arch!x64ToAmd64}.sha256",
            ),
        ),
        reporter=reporter,
    )


def gomplate(target: str, version: str, reporter: Optional[Reporter] = None) -> FetchOptions:
    return FetchOptions(
        target=target,
        url="https://github.com/hairyhenderson/gomplate/releases/download/v{version}/gomplate_{platform}-{arch!x64ToAmd64}",
        checks=(
            VersionCheck(
                version=version,
                exec_args=("--version",),
                post_process=_gomplate_version,
            ),
            HashCheck(
                remote_hash_url="https://github.com/hairyhenderson/gomplate/releases/download/v{version}/checksums-v{version}_sha256.txt",
                method="sha256",
                checksum_file_entry_path="bin/gomplate_{platform}-{arch!x64ToAmd64}",
            ),
        ),
        reporter=reporter,
    )


def terraform(target: str, version: str, reporter: Optional[Reporter] = None) -> FetchOptions:
    return FetchOptions.for_version(
        target,
        "https://releases.hashicorp.com/terraform/{version}/terraform_{version}_{platform}_{arch!x64ToAmd64}.zip",
        version,
        ["version"],
        _terraform_version,
        extraction=Extraction(path_in_zip="terraform"),
        reporter=reporter,
    )


CATALOG: Dict[str, Callable[..., FetchOptions]] = {
    "kubectl": kubectl,
    "sops": sops,
    "helmfile": helmfile,
    "helm": helm,
    "eksctl": eksctl,
    "minikube": minikube,
    "gomplate": gomplate,
    "terraform": terraform,
}


def get_tool_options(
    name: str, target: str, version: str, reporter: Optional[Reporter] = None
) -> FetchOptions:
    """根据工具名构建下载请求"""
    builder = CATALOG.get(name)
    if builder is None:
        raise ConfigurationError(
            f"未知的工具: {name}", context={"available": sorted(CATALOG)}
        )
    return builder(target, version, reporter=reporter)


async def fetch_tool(
    name: str,
    target: str,
    version: str,
    reporter: Optional[Reporter] = None,
    session: Optional[aiohttp.ClientSession] = None,
    context: Optional[PlaceholderContext] = None,
) -> FetchResult:
    """下载目录中的工具"""
    options = get_tool_options(name, target, version, reporter)
    return await fetch_executable(options, session=session, context=context)
