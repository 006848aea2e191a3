"""
URL/路径模板格式化

支持 {name} 与 {name!filter} 两种占位符，name 取自 PlaceholderContext
（version、platform、arch），filter 取自可扩展的过滤器注册表。
"""

import re
from typing import Callable, Dict

from fetchexec.exceptions import TemplateError
from fetchexec.models.options import PlaceholderContext

_PLACEHOLDER_RE = re.compile(r"\{(\w+)(?:!(\w+))?\}")


def _capitalize(value: str) -> str:
    return value[:1].upper() + value[1:]


def _arch_mapper(mapping: Dict[str, str]) -> Callable[[str], str]:
    def _apply(value: str) -> str:
        return mapping.get(value, value)

    return _apply


FILTERS: Dict[str, Callable[[str], str]] = {
    "capitalize": _capitalize,
    "x64ToAmd64": _arch_mapper({"x64": "amd64"}),
    "x64To64": _arch_mapper({"x64": "64"}),
}


def register_filter(name: str, func: Callable[[str], str]) -> None:
    """注册新的过滤器，同名过滤器会被覆盖"""
    FILTERS[name] = func


def format_template(template: str, context: PlaceholderContext) -> str:
    """
    展开模板中的占位符

    Args:
        template: 模板字符串，例如 "https://get.helm.sh/helm-v{version}-{platform}-{arch!x64ToAmd64}.tar.gz"
        context: 占位符上下文

    Returns:
        展开后的字符串

    Raises:
        TemplateError: 占位符不存在、version 未设置或过滤器未知
    """
    values = context.as_dict()

    def _replace(match: "re.Match[str]") -> str:
        name, filter_name = match.group(1), match.group(2)
        if name not in values:
            raise TemplateError(
                f"未知的模板占位符: {name}",
                context={"template": template, "placeholder": name},
            )
        value = values[name]
        if filter_name is None:
            return value
        func = FILTERS.get(filter_name)
        if func is None:
            raise TemplateError(
                f"未知的模板过滤器: {filter_name}",
                context={"template": template, "filter": filter_name},
            )
        return func(value)

    return _PLACEHOLDER_RE.sub(_replace, template)
