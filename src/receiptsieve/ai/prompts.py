"""Prompt templates and the tool schema for purchase extraction."""

EXTRACTION_TOOL_NAME = "extract_order_data"

SYSTEM_PROMPT = """You are an expert email analyzer that extracts purchase information from order and receipt emails using common-sense reasoning.

## PRIORITY 1: THE CORRECT MERCHANT
The merchant is the store or company that SOLD the product.

The subject line almost always contains the merchant name:
- "Your receipt from Anthropic, PBC #123" -> merchant "Anthropic"
- "Fwd: Order confirmation - Zara" -> merchant "Zara"
- "Receipt from Apple Store" -> merchant "Apple"
- "Takk for kjøpet hos Elkjøp" -> merchant "Elkjøp"

Merchant rules:
1. Check the subject line first.
2. Look for "from [Store]", "[Store] - Order", "Thank you for shopping at [Store]".
3. Company names such as "Anthropic, PBC", "Apple Inc" or "ZARA NORGE AS" are merchants.
4. NEVER use an email provider (gmail, outlook, yahoo, hotmail, icloud, live).
5. NEVER use a generic word (email, mail, receipt, order, unknown).
6. NEVER use the forwarding user's email domain.

If the context contains a MERCHANT HINT, it is authoritative: use it as the merchant name.

## COMMON-SENSE DEFAULTS

Delivery:
- "Delivery in 3-5 days" ordered on Jan 4 -> estimated_delivery_date 2025-01-08 (middle value)
- "Ships within 1-2 business days" -> add 4-5 days for delivery
- "Express shipping (1 day)" -> order date + 1

Returns:
- Clothing stores: 14-30 days (14 for apparel when nothing is stated)
- Electronics: usually 14-30 days
- "Angrerett" (Norwegian) is 14 days by law for online purchases
- "Full refund within X days" means X

Warranty:
- Electronics: usually 12-24 months
- Appliances: usually 24 months
- Software and digital goods: 0
- "Reklamasjonsrett" (Norwegian) is 2-5 years depending on product lifespan

Currency:
- Norwegian stores (Elkjøp, Komplett, CDON.no): NOK
- Swedish stores (IKEA SE, Boozt): SEK
- Euro zone stores: EUR
- US stores: USD
- Look for kr, NOK, $, €, £ symbols

## LANGUAGE
- no: "Takk for", "bestilling", "kvittering", "kr", "NOK"
- en: "Thank you", "order", "receipt", "total"
- sv: "Tack för", "beställning", "kronor"
- da: "Tak for", "ordre"
- de: "Danke", "Bestellung"

## EMAIL TYPE
- order_confirmation: "Order confirmed", "Takk for kjøpet"
- payment_receipt: "Payment received", "Kvittering"
- shipping_confirmation: "Shipped", "Sendt", "On its way"
- delivery_confirmation: "Delivered", "Levert"
- refund: "Refund issued", "Refusjon"
- invoice: "Invoice", "Faktura"
- thank_you: a thank-you without order details
- unknown: cannot determine

## AMOUNTS
Report the TOTAL paid, not a subtotal or a single line item:
- European "1.234,56" = 1234.56
- US "1,234.56" = 1234.56
- Norwegian "kr 1 234" = 1234 NOK

## CONFIDENCE
- high: merchant, total amount and date found clearly
- medium: most fields found with some uncertainty
- low: significant guessing required

When a value is ambiguous, leave it out and set needs_review instead of guessing.
Never return an email provider as merchant_name; re-read the subject line instead."""


USER_PROMPT = """Extract purchase information from this email:

Subject: {subject}

{content}

{context_hints}

Use the {tool_name} tool to return structured data."""


CONTEXT_HINTS = """=== IMPORTANT CONTEXT ===
{lines}
=== END CONTEXT ==="""


EXTRACTION_TOOL = {
    "name": EXTRACTION_TOOL_NAME,
    "description": "Extract structured purchase information from an order confirmation email",
    "parameters": {
        "type": "object",
        "properties": {
            "language": {
                "type": "string",
                "enum": ["no", "en", "sv", "da", "de", "fr", "other"],
                "description": "Detected language of the email",
            },
            "email_type": {
                "type": "string",
                "enum": [
                    "order_confirmation",
                    "payment_receipt",
                    "shipping_confirmation",
                    "delivery_confirmation",
                    "refund",
                    "invoice",
                    "thank_you",
                    "unknown",
                ],
                "description": "Type of email",
            },
            "is_purchase": {
                "type": "boolean",
                "description": "True if this email is related to a purchase/order",
            },
            "merchant_name": {
                "type": "string",
                "description": "Name of the store/brand (NOT an email provider like gmail)",
            },
            "merchant_category": {
                "type": "string",
                "enum": [
                    "apparel", "beauty", "electronics", "groceries", "home",
                    "travel", "subscriptions", "entertainment", "health", "other",
                ],
                "description": "Category of the merchant",
            },
            "merchant_website": {"type": "string", "description": "Website URL if found"},
            "order_number": {"type": "string", "description": "Order number or reference"},
            "purchase_date": {"type": "string", "description": "Purchase date in YYYY-MM-DD format"},
            "total_amount": {"type": "number", "description": "Total amount paid"},
            "currency": {"type": "string", "description": "ISO 4217 currency code (e.g. NOK, EUR, USD)"},
            "subtotal": {"type": "number", "description": "Subtotal before tax and shipping"},
            "tax": {"type": "number", "description": "Tax / VAT amount"},
            "shipping": {"type": "number", "description": "Shipping cost"},
            "discount": {"type": "number", "description": "Discount amount"},
            "item_name": {
                "type": "string",
                "description": 'Main item name, or "Multiple items from [Store]" if several',
            },
            "items_list": {
                "type": "array",
                "items": {"type": "string"},
                "description": "List of item names if multiple items",
            },
            "items_count": {"type": "number", "description": "Number of items in order"},
            "return_deadline_days": {"type": "number", "description": "Number of days for return/exchange"},
            "warranty_months": {
                "type": "number",
                "description": "Warranty period in months (0 if not mentioned)",
            },
            "estimated_delivery_date": {
                "type": "string",
                "description": "Estimated delivery date in YYYY-MM-DD format",
            },
            "tracking_number": {"type": "string", "description": "Shipment tracking number"},
            "has_invoice_attachment": {
                "type": "boolean",
                "description": "True if an invoice is mentioned to be attached",
            },
            "confidence": {
                "type": "object",
                "properties": {
                    "overall": {"type": "string", "enum": ["high", "medium", "low"]},
                    "merchant": {"type": "number"},
                    "amount": {"type": "number"},
                    "date": {"type": "number"},
                    "email_type": {"type": "number"},
                },
                "required": ["overall", "merchant", "amount", "date", "email_type"],
            },
            "extraction_notes": {
                "type": "string",
                "description": "Brief notes about extraction reasoning or uncertainties",
            },
            "needs_review": {"type": "boolean", "description": "True if extraction needs manual review"},
            "raw_merchant_text": {"type": "string", "description": "The text the merchant name was read from"},
        },
        "required": [
            "language",
            "email_type",
            "is_purchase",
            "merchant_name",
            "confidence",
            "needs_review",
            "has_invoice_attachment",
        ],
    },
}
