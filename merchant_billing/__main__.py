"""
Run the webhook service with uvicorn.

    python -m merchant_billing
"""

import uvicorn

from merchant_billing.config import settings


def main() -> None:
    uvicorn.run(
        "merchant_billing.main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.is_development,
        log_level="info",
        proxy_headers=True,
    )


if __name__ == "__main__":
    main()
