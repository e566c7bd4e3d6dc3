PAYMENT_CASH = "CASH"
PAYMENT_CHECK = "CHECK"
PAYMENT_CREDIT = "CREDIT"

PAYMENT_METHODS = {
    PAYMENT_CASH: "Cash",
    PAYMENT_CHECK: "Check",
    # credit sales are booked on the customer's account
    PAYMENT_CREDIT: "Credit",
}

PRICING_HYBRID = "HYBRID"

# monthly average purchase threshold -> loyalty discount %, highest first
LOYALTY_TIERS = (
    (10000, 10),
    (5000, 7),
    (2000, 5),
    (1000, 3),
    (500, 1),
)
LOYALTY_MIN_MONTHLY_PURCHASE = 500
LOYALTY_CLASSIFICATION = "vert"

SALE_REFERENCE_PREFIX = "AUTO-"
