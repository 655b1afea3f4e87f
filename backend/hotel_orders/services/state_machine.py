"""
订单状态机

订单状态只能沿着下面的主线向前推进：

    pending -> in_progress -> delivered -> payment -> completed

付款前的任意状态（pending、in_progress、delivered）都可以取消（cancelled）。
后端在写库前用它做最终校验，客户端视图在发请求前用它做预校验，
所有角色共用这一份状态定义和迁移规则。
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple


class OrderStatus(str, Enum):
    """订单状态"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DELIVERED = "delivered"
    PAYMENT = "payment"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Role(str, Enum):
    """操作角色"""
    CUSTOMER = "customer"
    STAFF = "staff"
    ADMIN = "admin"


class PaymentMethod(str, Enum):
    """支付方式"""
    CASH = "cash"
    UPI = "upi"
    CARD = "card"
    ONLINE = "online"


# 各端历史上使用的状态名 -> 统一状态
STATUS_ALIASES = {
    "confirmed": OrderStatus.IN_PROGRESS,
    "ready": OrderStatus.DELIVERED,
    "finalized": OrderStatus.PAYMENT,
}

# 主线上的先后顺序
STATUS_RANK = {
    OrderStatus.PENDING: 0,
    OrderStatus.IN_PROGRESS: 1,
    OrderStatus.DELIVERED: 2,
    OrderStatus.PAYMENT: 3,
    OrderStatus.COMPLETED: 4,
}

TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})
CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.IN_PROGRESS, OrderStatus.DELIVERED})
BILLABLE_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.PAYMENT})
ACTIVE_STATUSES = frozenset({
    OrderStatus.PENDING, OrderStatus.IN_PROGRESS, OrderStatus.DELIVERED, OrderStatus.PAYMENT,
})

_STAFF_SIDE = frozenset({Role.STAFF, Role.ADMIN})
_EVERYONE = frozenset({Role.CUSTOMER, Role.STAFF, Role.ADMIN})

# (当前状态, 目标状态) -> 允许发起的角色
TRANSITIONS: Dict[Tuple[OrderStatus, OrderStatus], FrozenSet[Role]] = {
    (OrderStatus.PENDING, OrderStatus.IN_PROGRESS): _STAFF_SIDE,
    (OrderStatus.IN_PROGRESS, OrderStatus.DELIVERED): _EVERYONE,
    (OrderStatus.DELIVERED, OrderStatus.PAYMENT): _EVERYONE,
    (OrderStatus.PAYMENT, OrderStatus.COMPLETED): _EVERYONE,
    (OrderStatus.PENDING, OrderStatus.CANCELLED): _EVERYONE,
    (OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED): _STAFF_SIDE,
    (OrderStatus.DELIVERED, OrderStatus.CANCELLED): _STAFF_SIDE,
}


class InvalidTransitionError(ValueError):
    """非法的状态变更"""

    def __init__(self, message: str, current: Optional[str] = None, target: Optional[str] = None):
        super().__init__(message)
        self.current = current
        self.target = target


@dataclass(frozen=True)
class Transition:
    """一次状态变更的校验结果，changed=False 表示重复提交（无需写库、无需推送）"""
    source: OrderStatus
    target: OrderStatus
    changed: bool


def parse_status(value) -> OrderStatus:
    """把字符串（包括旧的别名）转换为统一状态"""
    if isinstance(value, OrderStatus):
        return value
    text = str(value or "").strip().lower()
    if text in STATUS_ALIASES:
        return STATUS_ALIASES[text]
    try:
        return OrderStatus(text)
    except ValueError:
        raise InvalidTransitionError(f"未知的订单状态: {value}", target=str(value))


def parse_payment_method(value) -> PaymentMethod:
    """校验支付方式"""
    if isinstance(value, PaymentMethod):
        return value
    try:
        return PaymentMethod(str(value or "").strip().lower())
    except ValueError:
        raise InvalidTransitionError(f"不支持的支付方式: {value}")


def plan_transition(
    current,
    target,
    role: Role,
    has_bill: bool = False,
    payment_method: Optional[str] = None,
) -> Transition:
    """
    校验一次状态变更

    - 目标状态与当前状态相同：视为重复提交，返回 changed=False
    - 目标状态已经走过、跳级或角色无权限：抛出 InvalidTransitionError
    - 进入 payment：顾客必须给出支付方式
    - 员工/管理员把订单置为 completed：必须先有账单
    """
    current = parse_status(current)
    target = parse_status(target)
    role = Role(role)

    if current == target:
        return Transition(current, target, changed=False)

    if current in TERMINAL_STATUSES:
        raise InvalidTransitionError(
            f"订单已{_label(current)}，不能再变更为{_label(target)}", current.value, target.value
        )

    if target == OrderStatus.CANCELLED:
        if current not in CANCELLABLE_STATUSES:
            raise InvalidTransitionError("订单已进入付款阶段，不能取消", current.value, target.value)
    elif STATUS_RANK[target] < STATUS_RANK[current]:
        raise InvalidTransitionError(
            f"订单已经过{_label(target)}阶段，不能回退", current.value, target.value
        )

    allowed = TRANSITIONS.get((current, target))
    if allowed is None:
        raise InvalidTransitionError(
            f"不能从{_label(current)}直接变更为{_label(target)}", current.value, target.value
        )
    if role not in allowed:
        raise InvalidTransitionError(
            f"{_ROLE_LABELS[role]}无权把订单从{_label(current)}变更为{_label(target)}",
            current.value, target.value,
        )

    if target == OrderStatus.PAYMENT and role == Role.CUSTOMER:
        if not payment_method:
            raise InvalidTransitionError("请选择支付方式", current.value, target.value)
        parse_payment_method(payment_method)

    if target == OrderStatus.COMPLETED and role != Role.CUSTOMER and not has_bill:
        raise InvalidTransitionError("订单尚未生成账单，请先结账", current.value, target.value)

    return Transition(current, target, changed=True)


def can_transition(current, target, role: Role, has_bill: bool = False,
                   payment_method: Optional[str] = None) -> bool:
    try:
        plan_transition(current, target, role, has_bill=has_bill, payment_method=payment_method)
    except InvalidTransitionError:
        return False
    return True


def is_billable(status) -> bool:
    """订单是否可以结账生成账单"""
    return parse_status(status) in BILLABLE_STATUSES


def is_active(status) -> bool:
    return parse_status(status) in ACTIVE_STATUSES


_STATUS_LABELS = {
    OrderStatus.PENDING: "待接单",
    OrderStatus.IN_PROGRESS: "制作中",
    OrderStatus.DELIVERED: "已上菜",
    OrderStatus.PAYMENT: "待付款",
    OrderStatus.COMPLETED: "完成",
    OrderStatus.CANCELLED: "取消",
}

_ROLE_LABELS = {
    Role.CUSTOMER: "顾客",
    Role.STAFF: "员工",
    Role.ADMIN: "管理员",
}


def _label(status: OrderStatus) -> str:
    return f"「{_STATUS_LABELS[status]}」"
