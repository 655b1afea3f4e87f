"""
订单菜品明细计算
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """转换为两位小数的金额"""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def normalize_item(item) -> dict:
    """把菜品（pydantic模型或字典）整理为存库用的字典"""
    if hasattr(item, "model_dump"):
        item = item.model_dump()
    quantity = int(item.get("quantity") or 0)
    if quantity < 1:
        raise ValueError(f"菜品 {item.get('name')} 的数量必须大于0")
    price = to_money(item.get("price"))
    if price < 0:
        raise ValueError(f"菜品 {item.get('name')} 的价格不能为负数")
    return {
        "name": item.get("name"),
        "product_id": item.get("product_id"),
        "price": float(price),  # JSON列不能直接存Decimal
        "quantity": quantity,
    }


def normalize_items(items: Iterable) -> List[dict]:
    return [normalize_item(item) for item in items]


def line_total(item: dict) -> Decimal:
    return to_money(item.get("price")) * int(item.get("quantity") or 0)


def items_total(items: Iterable[dict]) -> Decimal:
    """订单合计 = Σ(单价 × 数量)"""
    total = Decimal("0")
    for item in items or []:
        total += line_total(item)
    return total.quantize(CENT, rounding=ROUND_HALF_UP)


def line_key(item: dict):
    """同一道菜的判定：优先按 product_id，没有则按名称"""
    if item.get("product_id") is not None:
        return ("product", item["product_id"])
    return ("name", (item.get("name") or "").strip().lower())


def merge_items(existing: Iterable[dict], additions: Iterable) -> List[dict]:
    """
    追加菜品（"再加几道菜"）
    同一道菜且单价相同时合并数量；单价不同则另起一行，已点的份数保持原价
    新菜品按顺序追加到末尾
    """
    merged = [dict(item) for item in normalize_items(existing or [])]
    index = {(line_key(item), to_money(item["price"])): i for i, item in enumerate(merged)}
    for addition in normalize_items(additions or []):
        key = (line_key(addition), to_money(addition["price"]))
        if key in index:
            merged[index[key]]["quantity"] += addition["quantity"]
        else:
            index[key] = len(merged)
            merged.append(addition)
    return merged


def remove_one_unit(items: Iterable[dict], name: Optional[str] = None,
                    product_id: Optional[int] = None) -> List[dict]:
    """减少一份菜品，数量减到0时整行删除"""
    target = line_key({"name": name, "product_id": product_id})
    result = []
    found = False
    for item in items or []:
        line = dict(item)
        if not found and line_key(line) == target:
            found = True
            line["quantity"] = int(line["quantity"]) - 1
            if line["quantity"] < 1:
                continue
        result.append(line)
    if not found:
        raise ValueError(f"订单中没有该菜品: {name or product_id}")
    return result
