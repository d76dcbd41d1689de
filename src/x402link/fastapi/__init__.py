"""
FastAPI middleware for x402 payment requirements.

Usage:   from x402link.fastapi.middleware import require_payment

Example:
    from fastapi import FastAPI
    from x402link.fastapi.middleware import require_payment

    app = FastAPI()
    app.middleware("http")(require_payment(price="$0.001", pay_to_address="0x..."))
"""
