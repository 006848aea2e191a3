import pytest

from fetchexec.exceptions import TemplateError
from fetchexec.models.options import PlaceholderContext
from fetchexec.template import FILTERS, format_template, register_filter


def test_expands_all_placeholders(context):
    url = format_template(
        "https://example.com/v{version}/{platform}/{arch}/tool", context
    )
    assert url == "https://example.com/v1.2.3/linux/x64/tool"


def test_text_without_placeholders_is_unchanged(context):
    assert format_template("https://example.com/tool", context) == "https://example.com/tool"


@pytest.mark.parametrize(
    "arch, expected",
    [("x64", "amd64"), ("arm64", "arm64"), ("ia32", "ia32")],
)
def test_x64_to_amd64(arch, expected):
    ctx = PlaceholderContext(platform="linux", arch=arch)
    assert format_template("{arch!x64ToAmd64}", ctx) == expected


def test_x64_to_64():
    assert format_template("{arch!x64To64}", PlaceholderContext("win32", "x64")) == "64"
    assert format_template("{arch!x64To64}", PlaceholderContext("win32", "arm64")) == "arm64"


def test_capitalize(context):
    assert format_template("eksctl_{platform!capitalize}.tar.gz", context) == "eksctl_Linux.tar.gz"


def test_unknown_placeholder_raises(context):
    with pytest.raises(TemplateError) as exc_info:
        format_template("https://example.com/{os}", context)
    assert exc_info.value.context["placeholder"] == "os"


def test_missing_version_raises():
    ctx = PlaceholderContext(platform="linux", arch="x64")
    with pytest.raises(TemplateError):
        format_template("tool-{version}", ctx)


def test_unknown_filter_raises(context):
    with pytest.raises(TemplateError) as exc_info:
        format_template("{arch!upper}", context)
    assert exc_info.value.code == "E101"


def test_register_filter(context):
    register_filter("armToAarch64", lambda value: "aarch64" if value == "arm64" else value)
    try:
        ctx = PlaceholderContext(platform="linux", arch="arm64")
        assert format_template("{arch!armToAarch64}", ctx) == "aarch64"
    finally:
        del FILTERS["armToAarch64"]
