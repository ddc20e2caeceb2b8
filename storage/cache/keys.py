def make_position_key(layout: str) -> str:
    return f"timelens:position:{layout}"
