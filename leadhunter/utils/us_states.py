"""US state names and postal codes: provider location formats and match checks."""

US_STATES = {
    "AL": "Alabama", "AK": "Alaska", "AZ": "Arizona", "AR": "Arkansas",
    "CA": "California", "CO": "Colorado", "CT": "Connecticut", "DE": "Delaware",
    "DC": "District of Columbia", "FL": "Florida", "GA": "Georgia", "HI": "Hawaii",
    "ID": "Idaho", "IL": "Illinois", "IN": "Indiana", "IA": "Iowa",
    "KS": "Kansas", "KY": "Kentucky", "LA": "Louisiana", "ME": "Maine",
    "MD": "Maryland", "MA": "Massachusetts", "MI": "Michigan", "MN": "Minnesota",
    "MS": "Mississippi", "MO": "Missouri", "MT": "Montana", "NE": "Nebraska",
    "NV": "Nevada", "NH": "New Hampshire", "NJ": "New Jersey", "NM": "New Mexico",
    "NY": "New York", "NC": "North Carolina", "ND": "North Dakota", "OH": "Ohio",
    "OK": "Oklahoma", "OR": "Oregon", "PA": "Pennsylvania", "RI": "Rhode Island",
    "SC": "South Carolina", "SD": "South Dakota", "TN": "Tennessee", "TX": "Texas",
    "UT": "Utah", "VT": "Vermont", "VA": "Virginia", "WA": "Washington",
    "WV": "West Virginia", "WI": "Wisconsin", "WY": "Wyoming",
}

_BY_NAME = {name.lower(): code for code, name in US_STATES.items()}


def state_code(state: str | None) -> str | None:
    """'California' / 'ca' / 'CA' -> 'CA'. Unknown values return None."""
    if not state:
        return None
    value = state.strip()
    if value.upper() in US_STATES:
        return value.upper()
    return _BY_NAME.get(value.lower())


def state_name(state: str | None) -> str | None:
    code = state_code(state)
    return US_STATES[code] if code else None


def same_state(a: str | None, b: str | None) -> bool:
    code_a, code_b = state_code(a), state_code(b)
    if code_a and code_b:
        return code_a == code_b
    return bool(a and b and a.strip().lower() == b.strip().lower())


def provider_location(state: str) -> str:
    """Location filter in the lead-finder format: 'california, us'."""
    name = state_name(state) or state.strip()
    return f"{name.lower()}, us"


def parse_location(location: str | None) -> tuple[str, str, str]:
    """Split 'City, State[, Country]' into (city, state, country)."""
    if not location:
        return "", "", ""
    parts = [p.strip() for p in location.split(",")]
    if len(parts) >= 3:
        return parts[0], parts[1], parts[2]
    if len(parts) == 2:
        if state_code(parts[1]):
            return parts[0], parts[1], "United States"
        return parts[0], "", parts[1]
    return parts[0], "", ""
