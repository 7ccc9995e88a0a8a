"""Generate realistic purchase invoice samples."""

import json
import random
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path
from typing import List

from invoice_search.models.invoice import Invoice, InvoiceItem

VENDORS = [
    "Gaurav Enterprises", "Deen Traders", "Sharma Electronics",
    "Kumar Stationers", "Mehta Furniture", "Patel Hardware",
    "Singh Computers", "Agarwal Textiles"
]

CATALOGUE = {
    "Gaurav Enterprises": [("Dell Laptop", 52000), ("Wireless Mouse", 650), ("Monitor Stand", 1800)],
    "Deen Traders": [("Office Chair", 4800), ("Filing Cabinet", 9200)],
    "Sharma Electronics": [("HP Printer", 14500), ("Printer Cartridge", 1100), ("UPS Battery", 6200)],
    "Kumar Stationers": [("A4 Paper", 320), ("Ball Pens", 90), ("Stapler", 240)],
    "Mehta Furniture": [("Conference Table", 75000), ("Visitor Sofa", 32000)],
    "Patel Hardware": [("Extension Board", 450), ("LED Tube Light", 380)],
    "Singh Computers": [("Lenovo Desktop", 41000), ("Keyboard", 900), ("Network Switch", 3600)],
    "Agarwal Textiles": [("Cotton Uniforms", 1200), ("Window Curtains", 2700)],
}


def generate_invoices(count: int = 60, seed: int = 7) -> List[Invoice]:
    """Generate sample purchase invoices spread over the last year."""
    rng = random.Random(seed)
    today = date.today()
    invoices = []

    for i in range(count):
        vendor = rng.choice(VENDORS)
        lines = rng.sample(CATALOGUE[vendor], k=rng.randint(1, len(CATALOGUE[vendor])))

        items = []
        for name, price in lines:
            quantity = Decimal(rng.randint(1, 5))
            items.append(InvoiceItem(
                product_name=name,
                quantity=quantity,
                price=Decimal(price),
                product_code=name.upper().replace(" ", "-")[:12]
            ))

        invoice = Invoice(
            id=i + 1,
            invoice_number=f"PI-2024-{i + 1:04d}",
            invoice_date=today - timedelta(days=rng.randint(0, 365)),
            branch_id=rng.choice([1, 1, 2, 3]),
            vendor_name=vendor,
            vendor_reference=f"{vendor.split()[0][:3].upper()}/{rng.randint(100, 999)}",
            bill_number=f"B{rng.randint(10000, 99999)}",
            narration=f"Purchase of {', '.join(name for name, _ in lines).lower()}",
            total_amount=sum((item.total for item in items), Decimal("0")),
            items=items
        )
        invoices.append(invoice)

    return invoices


def invoice_to_dict(invoice: Invoice) -> dict:
    return {
        "id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "invoice_date": invoice.invoice_date.isoformat(),
        "branch_id": invoice.branch_id,
        "vendor_name": invoice.vendor_name,
        "vendor_reference": invoice.vendor_reference,
        "bill_number": invoice.bill_number,
        "narration": invoice.narration,
        "total_amount": str(invoice.total_amount),
        "items": [
            {
                "product_name": item.product_name,
                "quantity": str(item.quantity),
                "price": str(item.price),
                "product_code": item.product_code
            }
            for item in invoice.items
        ]
    }


def save_sample_invoices(output_dir: Path, count: int = 60) -> List[Invoice]:
    """Generate and save sample invoices as JSON."""
    output_dir.mkdir(parents=True, exist_ok=True)

    invoices = generate_invoices(count)

    with open(output_dir / "sample_invoices.json", "w") as f:
        json.dump([invoice_to_dict(invoice) for invoice in invoices], f, indent=2)

    print(f"Generated {len(invoices)} sample invoices from {len(VENDORS)} vendors")
    print(f"Saved to: {output_dir}")

    return invoices


if __name__ == "__main__":
    output_dir = Path(__file__).parent
    save_sample_invoices(output_dir)
