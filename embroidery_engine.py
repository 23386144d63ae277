from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Tuple, Union


class Context(str, Enum):
    PRE_PURCHASE = "pre_purchase"
    POST_PURCHASE = "post_purchase"


class ValidationKind(str, Enum):
    MISSING_NAME = "MISSING_NAME"
    MISSING_OPTION = "MISSING_OPTION"


class LinkageKind(str, Enum):
    PRODUCT = "product"
    LINE = "line"


class EmbroideryError(ValueError):
    pass


class CatalogError(EmbroideryError):
    pass


EMBROIDERY_NAME_PROPERTY = "Embroidery Name"
BASE_LINE_SOURCE = "base"

# Option group name -> preview style property. Other groups only reach the preview when
# their selected value is a thread color (`is_color_kind`).
PREVIEW_STYLE_PROPERTIES: Mapping[str, str] = {
    "color": "color",
    "font": "font-family",
}


@dataclass(frozen=True)
class OptionValue:
    value: str
    price_delta_cents: int = 0
    remote_variant_id: Optional[str] = None
    is_color_kind: bool = False
    # CSS value pushed to the preview (hex color, font stack); falls back to `value`.
    preview_value: Optional[str] = None

    @property
    def css_value(self) -> str:
        return self.preview_value or self.value


@dataclass(frozen=True)
class OptionGroup:
    name: str
    values: Tuple[OptionValue, ...]

    def find(self, value: str) -> Optional[OptionValue]:
        for option in self.values:
            if option.value == value:
                return option
        return None

    @property
    def default(self) -> Optional[OptionValue]:
        return self.values[0] if self.values else None


@dataclass(frozen=True)
class Catalog:
    groups: Tuple[OptionGroup, ...]
    base_price_cents: int = 0
    # Remote variant for the personalization service itself (optional cart line).
    base_variant_id: Optional[str] = None

    def group(self, name: str) -> Optional[OptionGroup]:
        for g in self.groups:
            if g.name == name:
                return g
        return None

    @property
    def group_names(self) -> Tuple[str, ...]:
        return tuple(g.name for g in self.groups)


@dataclass(frozen=True)
class Subject:
    product_id: str
    context: Context
    line_reference: Optional[str] = None

    def __post_init__(self) -> None:
        if not str(self.product_id or "").strip():
            raise EmbroideryError("product_id is required")
        if self.context == Context.POST_PURCHASE and not self.line_reference:
            raise EmbroideryError("post-purchase configurators need the cart line reference")

    @property
    def storage_key(self) -> str:
        # Per product, never per line: the product page has no line yet.
        return str(self.product_id)


@dataclass(frozen=True)
class Configuration:
    subject: Subject
    personalization_text: str = ""
    enabled: bool = False
    # (group, value) pairs in catalog declaration order.
    selections: Tuple[Tuple[str, str], ...] = ()
    base_price_cents: int = 0

    @property
    def context(self) -> Context:
        return self.subject.context

    def selection(self, group: str) -> Optional[str]:
        for name, value in self.selections:
            if name == group:
                return value
        return None

    def selections_dict(self) -> Dict[str, str]:
        return dict(self.selections)


# region events


@dataclass(frozen=True)
class TextChanged:
    text: str


@dataclass(frozen=True)
class EnabledChanged:
    enabled: bool


@dataclass(frozen=True)
class OptionSelected:
    group: str
    value: str


@dataclass(frozen=True)
class SnapshotRestored:
    personalization_text: str
    enabled: bool
    selections: Mapping[str, str] = field(default_factory=dict)


ConfigurationEvent = Union[TextChanged, EnabledChanged, OptionSelected, SnapshotRestored]


# endregion events


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: Optional[ValidationKind] = None
    group: Optional[str] = None


VALID = ValidationResult(valid=True)


@dataclass(frozen=True)
class ParentLinkage:
    kind: LinkageKind
    reference: str


@dataclass(frozen=True)
class AddonLineItem:
    remote_variant_id: str
    quantity: int
    parent_linkage: ParentLinkage
    source: str


@dataclass(frozen=True)
class AddonPlan:
    line_items: Tuple[AddonLineItem, ...] = ()
    properties: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.line_items and not self.properties

    def with_quantity(self, quantity: int) -> "AddonPlan":
        return AddonPlan(
            line_items=tuple(replace(li, quantity=quantity) for li in self.line_items),
            properties=dict(self.properties),
        )


EMPTY_PLAN = AddonPlan()


@dataclass(frozen=True)
class PreviewState:
    text: str
    # (style property, css value) pairs, e.g. ("font-family", "Brush Script MT").
    styles: Tuple[Tuple[str, str], ...] = ()

    def style(self, prop: str) -> Optional[str]:
        for name, value in self.styles:
            if name == prop:
                return value
        return None


@dataclass(frozen=True)
class DerivedState:
    total_price_cents: int
    validation: ValidationResult
    addon_plan: AddonPlan
    preview: PreviewState
    name_length: int
    price_label: str

    @property
    def add_button_enabled(self) -> bool:
        return self.validation.valid


def format_money(cents: int) -> str:
    """
    Format integer cents as a dollar amount (`$8.50`).

    Stand-in for the storefront's money formatter; callers can pass their own.
    """
    if not isinstance(cents, int):
        raise TypeError(f"cents must be int (got {type(cents).__name__})")
    sign = "-" if cents < 0 else ""
    return f"{sign}${abs(cents) / 100.0:,.2f}"


def price_label(total_cents: int, base_price_cents: int, formatter: Callable[[int], str] = format_money) -> str:
    # Before a name is typed the widget still advertises the flat surcharge.
    if total_cents > 0:
        return "+" + formatter(total_cents)
    return "+" + formatter(base_price_cents)


def initial_configuration(subject: Subject, catalog: Catalog) -> Configuration:
    """
    Configuration at mount: no text, disabled, first value of every group selected.
    """
    selections = tuple((g.name, g.default.value) for g in catalog.groups if g.default is not None)
    return Configuration(
        subject=subject,
        personalization_text="",
        enabled=False,
        selections=selections,
        base_price_cents=catalog.base_price_cents,
    )


def _ordered_selections(catalog: Catalog, chosen: Mapping[str, str]) -> Tuple[Tuple[str, str], ...]:
    return tuple((g.name, chosen[g.name]) for g in catalog.groups if g.name in chosen)


def _lookup_option(catalog: Catalog, group: str, value: str) -> Optional[OptionValue]:
    g = catalog.group(group)
    if g is None:
        return None
    return g.find(value)


def reduce(configuration: Configuration, event: ConfigurationEvent, catalog: Catalog) -> Configuration:
    """
    Apply one input event and return the next configuration.

    Unknown groups or values are rejected for live selections. Restored snapshots may be
    older than the catalog, so their stale entries are dropped instead.
    """
    if isinstance(event, TextChanged):
        return replace(configuration, personalization_text=str(event.text or ""))

    if isinstance(event, EnabledChanged):
        return replace(configuration, enabled=bool(event.enabled))

    if isinstance(event, OptionSelected):
        if _lookup_option(catalog, event.group, event.value) is None:
            raise CatalogError(f"Unknown option {event.value!r} for group {event.group!r}")
        chosen = configuration.selections_dict()
        chosen[event.group] = event.value
        return replace(configuration, selections=_ordered_selections(catalog, chosen))

    if isinstance(event, SnapshotRestored):
        chosen = configuration.selections_dict()
        for group, value in dict(event.selections or {}).items():
            if _lookup_option(catalog, str(group), str(value)) is not None:
                chosen[str(group)] = str(value)
        return replace(
            configuration,
            personalization_text=str(event.personalization_text or ""),
            enabled=bool(event.enabled),
            selections=_ordered_selections(catalog, chosen),
        )

    raise TypeError(f"Unsupported configuration event: {type(event).__name__}")


def compute_total_price(configuration: Configuration, catalog: Catalog) -> int:
    if not configuration.personalization_text:
        return 0
    total = configuration.base_price_cents
    for group, value in configuration.selections:
        option = _lookup_option(catalog, group, value)
        if option is not None:
            total += option.price_delta_cents
    return total


def validate_configuration(configuration: Configuration, catalog: Catalog) -> ValidationResult:
    if not configuration.enabled:
        return VALID
    if not configuration.personalization_text.strip():
        return ValidationResult(valid=False, reason=ValidationKind.MISSING_NAME)
    for g in catalog.groups:
        if configuration.selection(g.name) is None:
            return ValidationResult(valid=False, reason=ValidationKind.MISSING_OPTION, group=g.name)
    return VALID


def embroidery_summary(configuration: Configuration) -> str:
    """
    Cart property text: the quoted name followed by every chosen value,
    e.g. `"Ava", Script, Gold`.
    """
    parts: List[str] = ['"' + configuration.personalization_text + '"']
    parts.extend(value for _, value in configuration.selections)
    return ", ".join(parts)


def _parent_linkage(subject: Subject) -> ParentLinkage:
    if subject.context == Context.POST_PURCHASE:
        return ParentLinkage(kind=LinkageKind.LINE, reference=str(subject.line_reference))
    return ParentLinkage(kind=LinkageKind.PRODUCT, reference=str(subject.product_id))


def build_addon_plan(
    configuration: Configuration,
    catalog: Catalog,
    *,
    quantity: int = 1,
    validation: Optional[ValidationResult] = None,
) -> AddonPlan:
    if validation is None:
        validation = validate_configuration(configuration, catalog)
    if not configuration.enabled or not validation.valid:
        return EMPTY_PLAN

    qty = max(1, int(quantity))
    parent = _parent_linkage(configuration.subject)
    items: List[AddonLineItem] = []

    if catalog.base_variant_id and configuration.base_price_cents > 0:
        items.append(
            AddonLineItem(
                remote_variant_id=catalog.base_variant_id,
                quantity=qty,
                parent_linkage=parent,
                source=BASE_LINE_SOURCE,
            )
        )

    for group, value in configuration.selections:
        option = _lookup_option(catalog, group, value)
        # Free options only show up in the preview and the summary property.
        if option is None or not option.remote_variant_id or option.price_delta_cents <= 0:
            continue
        items.append(
            AddonLineItem(
                remote_variant_id=option.remote_variant_id,
                quantity=qty,
                parent_linkage=parent,
                source=group,
            )
        )

    return AddonPlan(
        line_items=tuple(items),
        properties={EMBROIDERY_NAME_PROPERTY: embroidery_summary(configuration)},
    )


def preview_state(configuration: Configuration, catalog: Catalog) -> PreviewState:
    styles: List[Tuple[str, str]] = []
    for group, value in configuration.selections:
        option = _lookup_option(catalog, group, value)
        if option is None:
            continue
        prop = PREVIEW_STYLE_PROPERTIES.get(group)
        if prop is None and option.is_color_kind:
            prop = "color"
        if prop is None or any(name == prop for name, _ in styles):
            continue
        styles.append((prop, option.css_value))
    return PreviewState(text=configuration.personalization_text, styles=tuple(styles))


def derive(
    configuration: Configuration,
    catalog: Catalog,
    *,
    quantity: int = 1,
    formatter: Callable[[int], str] = format_money,
) -> DerivedState:
    """
    Every value the widget shows or submits, computed from the configuration alone.

    Safe to call any number of times; equal inputs give equal results.
    """
    total = compute_total_price(configuration, catalog)
    validation = validate_configuration(configuration, catalog)
    return DerivedState(
        total_price_cents=total,
        validation=validation,
        addon_plan=build_addon_plan(configuration, catalog, quantity=quantity, validation=validation),
        preview=preview_state(configuration, catalog),
        name_length=len(configuration.personalization_text),
        price_label=price_label(total, configuration.base_price_cents, formatter),
    )
