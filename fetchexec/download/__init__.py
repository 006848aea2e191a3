"""
fetchexec 下载层

包含文件校验、流式解码管道和归档提取。
"""

from fetchexec.download.archive import (
    extract_directory,
    extract_tar_member,
    extract_zip_member,
    update_symlink,
)
from fetchexec.download.pipeline import (
    EXECUTABLE_MODE,
    apply_stages,
    build_stages,
    bunzip2,
    gunzip,
    save_stream,
)
from fetchexec.download.verifier import (
    ExecutableVerifier,
    calc_hash,
    read_from_checksum_file,
    run_version_probe,
)

__all__ = [
    "EXECUTABLE_MODE",
    "ExecutableVerifier",
    "apply_stages",
    "build_stages",
    "bunzip2",
    "calc_hash",
    "extract_directory",
    "extract_tar_member",
    "extract_zip_member",
    "gunzip",
    "read_from_checksum_file",
    "run_version_probe",
    "save_stream",
    "update_symlink",
]
