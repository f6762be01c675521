# utils/code_generator.py
import re
from sqlalchemy.orm import Session

def next_code(db: Session, model, field: str, prefix: str, width: int) -> str:
    """
    Running ต่อเนื่องแบบ PREFIX#### เช่น C0001, C0002
    """
    col = getattr(model, field)
    pat = re.compile(rf"^{re.escape(prefix)}(\d+)$")
    max_n = 0
    for (code,) in db.query(col).filter(col.like(f"{prefix}%")).all():
        m = pat.match(code or "")
        if m:
            n = int(m.group(1))
            if n > max_n: max_n = n
    return f"{prefix}{str(max_n+1).zfill(width)}"
