# utils/orm.py
from sqlalchemy.inspection import inspect

def sa_to_dict(obj):
    """แปลง SQLAlchemy object -> dict (เฉพาะคอลัมน์)"""
    if obj is None:
        return None
    mapper = inspect(obj.__class__)
    data = {}
    for col in mapper.columns:
        data[col.key] = getattr(obj, col.key)
    return data

def sa_update_from_dict(obj, data: dict, allow_fields=None):
    """
    อัปเดตค่าใน obj จาก dict (จำกัดฟิลด์ที่อนุญาตได้)

    bind เฉพาะ key ที่ส่งมาจริง ไม่ต่อ string SQL เอง
    """
    if allow_fields is None:
        allow_fields = data.keys()
    for k in allow_fields:
        if k in data:
            setattr(obj, k, data[k])
    return obj

def page_info(page: int, limit: int, total: int) -> dict:
    pages = (total + limit - 1) // limit if limit else 1
    return {"page": page, "limit": limit, "total": total, "pages": max(pages, 1)}
