"""Plain-text receipts for sales recorded while offline."""
from datetime import datetime
from decimal import Decimal

from pos_resilience.core.models import OfflineTransaction


def _money(value: Decimal) -> str:
    return f"${value:.2f}"


def _display_time(timestamp: str) -> str:
    try:
        return datetime.fromisoformat(timestamp).strftime("%Y-%m-%d %H:%M:%S %Z").strip()
    except ValueError:
        return timestamp


def render_offline_receipt(transaction: OfflineTransaction) -> str:
    """Render the receipt printed when a sale is stored offline."""
    lines = [
        "OFFLINE RECEIPT",
        "===============",
        f"Date: {_display_time(transaction.timestamp)}",
        f"Transaction ID: {transaction.id}",
    ]
    if transaction.customer_id:
        lines.append(f"Customer ID: {transaction.customer_id}")

    lines += ["", "ITEMS:", "------"]
    for item in transaction.items:
        lines.append(item.name or item.product_id)
        lines.append(
            f"  Qty: {item.quantity} x {_money(item.unit_price)} = {_money(item.line_total)}"
        )

    lines += ["", "SUMMARY:", "--------", f"Subtotal: {_money(transaction.subtotal)}"]
    if transaction.discount > 0:
        lines.append(f"Discount: -{_money(transaction.discount)}")
    if transaction.tip > 0:
        lines.append(f"Tip: {_money(transaction.tip)}")
    lines += [
        f"Tax: {_money(transaction.tax)}",
        f"TOTAL: {_money(transaction.total)}",
        f"Payment: {transaction.payment_method.upper()}",
        "",
        "* Transaction processed offline *",
        "* Will sync when online *",
    ]
    return "\n".join(lines)
