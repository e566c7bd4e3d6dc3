def parse_number(text: str, name: str = "value") -> str:
    t = (text or "").strip().replace(",", ".")
    if not t:
        raise ValueError(f"{name} is empty")
    return t


def parse_qty(text: str) -> int:
    t = parse_number(text, "qty")
    qty = int(t) if t.isdigit() else None
    if not qty:
        raise ValueError("qty must be a whole number > 0")
    return qty
