"""
Per-type value sanitizing for the pipeline's sanitize stage.

sanitize_field() cleans one value according to its field type (trimming,
number parsing, empty-to-None conversion, HTML escaping, option checks);
sanitize_form() applies it to a whole values mapping and
create_sanitize_handler() wraps that into a ready-made sanitize handler.

Field types without a dedicated rule only get their strings trimmed.
"""
import html
import logging
import math
import re
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, FrozenSet, Iterable, Mapping, Optional, Union

from formstate.config import FieldConfig

logger = logging.getLogger(__name__)

TEXT_TYPES = frozenset({'text', 'email', 'url', 'tel', 'password'})

# Never HTML-escaped: validated as-is downstream
_UNESCAPED_TYPES = frozenset({'password', 'email'})

_CHECKBOX_TRUE = frozenset({'true', '1', 'on', 'yes'})

_NUMBER_PREFIX = re.compile(r'-?(?:\d+(?:\.\d*)?|\.\d+)')


@dataclass(frozen=True)
class SanitizeOptions:
    """How aggressively values are cleaned.

    convert_empty_to_none=None keeps each type's own default: numbers and
    single selects turn empty input into None, text and toggles into "".
    """
    trim_strings: bool = True
    convert_empty_to_none: Optional[bool] = None
    escape_html: bool = False
    normalize_numbers: bool = True
    exclude_fields: FrozenSet[str] = frozenset()

    def empty_to_none(self, type_default: bool) -> bool:
        if self.convert_empty_to_none is None:
            return type_default
        return self.convert_empty_to_none


SANITIZE_PRESETS: Dict[str, SanitizeOptions] = {
    # untrusted user input
    'strict': SanitizeOptions(convert_empty_to_none=True, escape_html=True),
    # already processed data
    'soft': SanitizeOptions(convert_empty_to_none=False, normalize_numbers=False),
    # filter panels keep empty strings
    'filters': SanitizeOptions(convert_empty_to_none=False),
}


def _is_empty(value: Any) -> bool:
    return value is None or value == ''


def _sanitize_text(value: Any, config: FieldConfig, options: SanitizeOptions) -> Any:
    to_none = options.empty_to_none(False)
    if value is None:
        return None if to_none else ''

    text = str(value)
    if options.trim_strings:
        text = text.strip()
    if options.escape_html and config.type not in _UNESCAPED_TYPES:
        text = html.escape(text, quote=True)
    if config.max_length and len(text) > config.max_length:
        text = text[:config.max_length]

    if to_none and text == '':
        return None
    return text


def _finish_number(number: float, config: FieldConfig, options: SanitizeOptions) -> Any:
    if options.normalize_numbers:
        if config.min_value is not None and number < config.min_value:
            return config.min_value
        if config.max_value is not None and number > config.max_value:
            return config.max_value
    if config.precision is not None:
        return round(number, config.precision)
    return number


def _sanitize_number(value: Any, config: FieldConfig, options: SanitizeOptions) -> Any:
    empty = None if options.empty_to_none(True) else 0
    if _is_empty(value):
        return empty
    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        if math.isnan(value) or math.isinf(value):
            return None
        return _finish_number(value, config, options)

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return empty
        # "1 234,5 ₽" -> "1234.5"
        cleaned = re.sub(r'\s+', '', text).replace(',', '.', 1)
        cleaned = re.sub(r'[^\d.-]', '', cleaned)
        match = _NUMBER_PREFIX.match(cleaned)
        if match is None:
            return None
        literal = match.group()
        number = float(literal)
        if math.isinf(number):
            return None
        if '.' not in literal:
            number = int(literal)
        return _finish_number(number, config, options)

    return None


def _sanitize_range(value: Any, config: FieldConfig, options: SanitizeOptions) -> Dict[str, Any]:
    if not isinstance(value, Mapping):
        return {'min': None, 'max': None}

    bounds = replace(config, type='number')
    low = _sanitize_number(value['min'], bounds, options) if 'min' in value else None
    high = _sanitize_number(value['max'], bounds, options) if 'max' in value else None
    if low is not None and high is not None and low > high:
        high = low
    return {'min': low, 'max': high}


def _sanitize_select_single(value: Any, config: FieldConfig, options: SanitizeOptions) -> Any:
    empty = None if options.empty_to_none(True) else ''
    if _is_empty(value):
        return empty
    text = str(value).strip()
    return text if text else empty


def _sanitize_select_multi(value: Any, config: FieldConfig, options: SanitizeOptions) -> list:
    if _is_empty(value):
        return []
    if not isinstance(value, (list, tuple, set, frozenset)):
        text = str(value).strip()
        return [text] if text else []

    result = []
    for item in value:
        if _is_empty(item):
            continue
        text = str(item).strip()
        if text and text not in result:
            result.append(text)
    if config.max_selections:
        result = result[:config.max_selections]
    return result


def _sanitize_checkbox(value: Any, config: FieldConfig, options: SanitizeOptions) -> bool:
    if _is_empty(value):
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _CHECKBOX_TRUE
    return bool(value)


def _sanitize_segmented_toggle(value: Any, config: FieldConfig, options: SanitizeOptions) -> Any:
    empty = None if options.empty_to_none(False) else ''
    if _is_empty(value):
        return empty
    text = str(value).strip()
    if config.options and text not in {str(option) for option in config.options}:
        return empty
    return text


_SANITIZERS: Dict[str, Callable[[Any, FieldConfig, SanitizeOptions], Any]] = {
    **{field_type: _sanitize_text for field_type in TEXT_TYPES},
    'number': _sanitize_number,
    'range': _sanitize_range,
    'select-single': _sanitize_select_single,
    'select-multi': _sanitize_select_multi,
    'checkbox': _sanitize_checkbox,
    'segmented-toggle': _sanitize_segmented_toggle,
}


def _resolve_options(options: Union[SanitizeOptions, str, None], overrides: Mapping[str, Any]) -> SanitizeOptions:
    if isinstance(options, str):
        if options not in SANITIZE_PRESETS:
            raise KeyError(f"Unknown sanitize preset: {options!r}")
        options = SANITIZE_PRESETS[options]
    options = options or SanitizeOptions()
    if 'exclude_fields' in overrides:
        overrides = {**overrides, 'exclude_fields': frozenset(overrides['exclude_fields'])}
    return replace(options, **overrides) if overrides else options


def sanitize_field(key: str, value: Any, config: Optional[FieldConfig] = None,
                   options: Optional[SanitizeOptions] = None) -> Any:
    """Clean one value according to its field type.

    Args:
        key: Submission key of the field (checked against exclude_fields)
        value: Raw value
        config: Field configuration; a plain text field when omitted
        options: SanitizeOptions; defaults when omitted
    """
    options = options or SanitizeOptions()
    if key in options.exclude_fields:
        return value

    config = config or FieldConfig(id=key)
    sanitizer = _SANITIZERS.get(config.type)
    if sanitizer is not None:
        return sanitizer(value, config, options)
    if isinstance(value, str) and options.trim_strings:
        return value.strip()
    return value


def _config_map(fields: Iterable[Union[FieldConfig, Mapping]]) -> Dict[str, FieldConfig]:
    configs = {}
    for item in fields:
        config = item if isinstance(item, FieldConfig) else FieldConfig.from_dict(item)
        configs[config.name or config.id] = config
    return configs


def sanitize_form(values: Mapping[str, Any], fields: Iterable[Union[FieldConfig, Mapping]] = (),
                  options: Optional[SanitizeOptions] = None) -> Dict[str, Any]:
    """Clean every value of a values mapping (submission key -> value)."""
    if not isinstance(values, Mapping):
        return {}
    configs = _config_map(fields)
    return {
        key: sanitize_field(key, value, configs.get(key), options)
        for key, value in values.items()
    }


def create_sanitize_handler(
    fields: Optional[Iterable[Union[FieldConfig, Mapping]]] = None,
    options: Union[SanitizeOptions, str, None] = None,
    **overrides: Any,
) -> Callable[[Any], Dict[str, Any]]:
    """Build a sanitize stage handler.

    Args:
        fields: Field configurations; the controller's declared fields when None
        options: SanitizeOptions or a preset name ('strict', 'soft', 'filters')
        **overrides: SanitizeOptions attributes replacing the chosen ones

    Example:
        create_pipeline(
            sanitize=create_sanitize_handler(options='strict', exclude_fields=['comment']),
            submit='api.orders.create',
        )
    """
    resolved = _resolve_options(options, overrides)
    fixed_fields = None if fields is None else list(fields)

    def sanitize_handler(context: Any) -> Dict[str, Any]:
        if fixed_fields is not None:
            field_configs = fixed_fields
        elif context.controller is not None:
            field_configs = context.controller.config.fields
        else:
            field_configs = ()
        return sanitize_form(context.values or {}, field_configs, resolved)

    logger.debug(f"Created sanitize handler: {resolved}")
    return sanitize_handler
