"""MerchantPay session and authorization API."""
