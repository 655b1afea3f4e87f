"""
修复订单金额历史数据
按菜品明细重新计算 total_amount（Σ 单价 × 数量），
并同步修正对应账单的 total、tax_amount、final_total
"""
import sys
from sqlalchemy.orm import Session
from hotel_orders.db.database import SessionLocal
from hotel_orders.models.bill import Bill
from hotel_orders.models.order import Order
from hotel_orders.services.items import items_total, to_money
from hotel_orders.services.reconciler import calculate_tax


def recalculate_order_totals(hotel_id=None, dry_run: bool = False) -> int:
    """修复订单金额，返回修复的订单数"""
    db: Session = SessionLocal()

    try:
        # 1. 查找金额和明细不一致的订单
        query = db.query(Order)
        if hotel_id is not None:
            query = query.filter(Order.hotel_id == hotel_id)
        incorrect_orders = [
            order for order in query.all()
            if to_money(order.total_amount) != items_total(order.items)
        ]

        if not incorrect_orders:
            print("没有需要修复的订单")
            return 0

        print(f"找到 {len(incorrect_orders)} 条需要修复的订单")

        # 2. 修复订单金额
        for order in incorrect_orders:
            old_total = order.total_amount
            new_total = items_total(order.items)
            print(f"修复订单 ID={order.id} {order.order_number}: total_amount {old_total} -> {new_total}")
            order.total_amount = new_total

            # 3. 同步修正账单
            bill = db.query(Bill).filter(Bill.order_id == order.id).first()
            if bill is None:
                continue
            tax_amount = calculate_tax(new_total, bill.tax_percentage)
            print(f"  账单 ID={bill.id}: final_total {bill.final_total} -> {new_total + tax_amount}")
            bill.total = new_total
            bill.tax_amount = tax_amount
            bill.final_total = new_total + tax_amount

        if dry_run:
            db.rollback()
            print("试运行，未写入数据库")
        else:
            db.commit()
            print("修复完成！")
        return len(incorrect_orders)

    except Exception as e:
        db.rollback()
        print(f"修复失败: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    args = [a for a in sys.argv[1:] if a != "--dry-run"]
    recalculate_order_totals(
        hotel_id=int(args[0]) if args else None,
        dry_run="--dry-run" in sys.argv,
    )
