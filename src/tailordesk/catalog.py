from __future__ import annotations

from typing import Any, Mapping


class CatalogError(Exception):
    pass


_TROUSER = ("Waist", "Hips", "Thigh", "Knee", "Bottom", "Length", "Crotch")

# garment type -> component -> measurement fields (inches)
GARMENT_CATALOG: dict[str, dict[str, tuple[str, ...]]] = {
    "Suit": {
        "Coat": ("Shoulder", "Chest", "Bodice", "Waist", "Bicep", "Sleeve", "Length", "Hips"),
        "Shirt": ("Shoulder", "Chest", "Bodice", "Waist", "Sleeve", "Length", "Neck", "Cuff"),
        "Trouser": _TROUSER,
    },
    "Kaunda/Senator Suit": {
        "Top": ("Shoulder", "Sleeve", "Arm", "Chest", "Waist", "Hips", "Length", "Neck"),
        "Trouser": _TROUSER,
    },
    "Trouser": {
        "Trouser": _TROUSER,
    },
    "Shirt": {
        "Shirt": (
            "Shoulder",
            "Chest",
            "Bust",
            "Bodice",
            "Waist",
            "Long Sleeve",
            "Short Sleeve",
            "Length",
            "Neck",
            "Cuff",
        ),
    },
    "Dress": {
        "Dress": ("Shoulder", "Bust", "Waist", "Hips", "Length", "Sleeve"),
    },
    "Coat": {
        "Coat": ("Shoulder", "Chest", "Waist", "Sleeve", "Length", "Hips"),
    },
    "Half Coat": {
        "Coat": ("Shoulder", "Chest", "Waist", "Length"),
    },
    "Alteration": {
        "Notes": ("Description",),
    },
}


def validate_catalog(catalog: Mapping[str, Mapping[str, Any]]) -> None:
    if not catalog:
        raise CatalogError("Garment catalog is empty.")
    for garment, components in catalog.items():
        if not isinstance(garment, str) or not garment.strip():
            raise CatalogError(f"Invalid garment name: {garment!r}")
        if not components:
            raise CatalogError(f"Garment {garment!r} has no components.")
        for component, fields in components.items():
            if not isinstance(component, str) or not component.strip():
                raise CatalogError(f"Invalid component name in {garment!r}: {component!r}")
            if isinstance(fields, str) or not fields:
                raise CatalogError(f"{garment}/{component} must list at least one field.")
            if any(not isinstance(f, str) or not f.strip() for f in fields):
                raise CatalogError(f"{garment}/{component} has an invalid field name.")
            if len(set(fields)) != len(fields):
                raise CatalogError(f"{garment}/{component} has duplicate fields.")


validate_catalog(GARMENT_CATALOG)


def garment_types() -> list[str]:
    return list(GARMENT_CATALOG)


def components_for(garment_type: str) -> dict[str, tuple[str, ...]]:
    return dict(GARMENT_CATALOG.get(garment_type, {}))


def clean_measurements(garment_type: str, raw: Mapping[str, Mapping[str, Any]]) -> dict[str, dict[str, float]]:
    """Keep only catalog fields that carry a number; blanks are dropped."""
    out: dict[str, dict[str, float]] = {}
    for component, fields in components_for(garment_type).items():
        given = raw.get(component) or {}
        values = {}
        for name in fields:
            value = given.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                continue
            try:
                values[name] = float(value)
            except (TypeError, ValueError):
                continue
        if values:
            out[component] = values
    return out


def measurements_from_form(garment_type: str, form: Mapping[str, Any]) -> dict[str, dict[str, float]]:
    """Read ``m__<component>__<field>`` inputs back into the nested mapping."""
    raw: dict[str, dict[str, Any]] = {}
    for key, value in form.items():
        if not key.startswith("m__"):
            continue
        parts = key.split("__", 2)
        if len(parts) != 3:
            continue
        raw.setdefault(parts[1], {})[parts[2]] = value
    return clean_measurements(garment_type, raw)


def _number(value: float) -> str:
    return f"{value:g}"


def format_measurements(measurements: Mapping[str, Mapping[str, float]]) -> list[str]:
    if not measurements:
        return ["No measurements recorded"]
    lines = []
    for component, fields in measurements.items():
        parts = [f'{name}: {_number(value)}"' for name, value in fields.items()]
        lines.append(f"{component}: " + " ".join(parts))
    return lines
