from hotel_orders.services.printer import PrinterError, ReceiptPrinter


def event_names(messages):
    """推送消息的事件名列表"""
    return [message["event"] for message in messages]


def only(messages, event):
    return [message for message in messages if message["event"] == event]


class FakePrinter(ReceiptPrinter):
    """记录打印内容的假打印机，fail=True 时模拟打印机离线"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.receipts = []

    def print_receipt(self, data: bytes) -> None:
        if self.fail:
            raise PrinterError("打印机离线")
        self.receipts.append(data)
