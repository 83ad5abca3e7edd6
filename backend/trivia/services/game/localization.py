from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from .errors import ValidationError

FALLBACK_LANG = 'en'

JsonText = Union[str, Dict[str, str]]


@dataclass(frozen=True)
class LocalizedText:
    """Either a single string or translations keyed by language code.

    Translations must always carry an ``en`` entry, which is what
    :meth:`resolve` falls back to.
    """

    plain: Optional[str] = None
    translations: Dict[str, str] = field(default_factory=dict)

    @property
    def is_plain(self) -> bool:
        return self.plain is not None

    def resolve(self, lang: str = FALLBACK_LANG) -> str:
        if self.is_plain:
            return self.plain
        if lang in self.translations:
            return self.translations[lang]
        return self.translations[FALLBACK_LANG]

    def to_json(self) -> JsonText:
        if self.is_plain:
            return self.plain
        return dict(self.translations)

    @classmethod
    def from_json(cls, value, field_name: str = 'text', allow_empty: bool = False) -> 'LocalizedText':
        if isinstance(value, str):
            if not value.strip() and not allow_empty:
                raise ValidationError(f'{field_name} must not be empty')
            return cls(plain=value)
        if isinstance(value, dict):
            if FALLBACK_LANG not in value:
                raise ValidationError(f"{field_name} translations need an '{FALLBACK_LANG}' entry")
            if not all(isinstance(k, str) and isinstance(v, str) for k, v in value.items()):
                raise ValidationError(f'{field_name} translations must map language codes to strings')
            return cls(translations=dict(value))
        if value is None and allow_empty:
            return cls(plain='')
        raise ValidationError(f'{field_name} must be a string or a mapping of translations')
