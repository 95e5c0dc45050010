"""Send a correctly signed gateway callback to a local payments service.

Lets the IPN path be exercised without the real gateway sandbox. Pass
`--tamper` to flip the amount after signing and watch the rejection.
"""

import argparse
import json
import os
from datetime import datetime, timezone

import httpx

from roompay.gateway.canonical import canonicalize
from roompay.gateway.redirect import SIGNATURE_FIELD, format_timestamp, scale_amount
from roompay.gateway.signing import sign


def build_callback(order_id: str, amount: int, response_code: str, merchant_code: str, secret: str) -> dict:
    """Gateway-shaped callback params, signed with `secret`."""

    now = datetime.now(timezone.utc)
    params = {
        "vnp_TmnCode": merchant_code,
        "vnp_TxnRef": order_id,
        "vnp_Amount": str(scale_amount(amount)),
        "vnp_ResponseCode": response_code,
        "vnp_TransactionStatus": response_code,
        "vnp_TransactionNo": now.strftime("%H%M%S%f"),
        "vnp_BankCode": "NCB",
        "vnp_PayDate": format_timestamp(now),
        "vnp_OrderInfo": f"Thanh toan don hang {order_id}",
    }
    params[SIGNATURE_FIELD] = sign(canonicalize(params).to_query(), secret)
    return params


def main() -> None:
    parser = argparse.ArgumentParser(description="POST a signed callback to the payments IPN endpoint.")
    parser.add_argument("--payments-url", default="http://localhost:8002")
    parser.add_argument("--order-id", required=True)
    parser.add_argument("--amount", type=int, required=True)
    parser.add_argument("--response-code", default="00")
    parser.add_argument("--merchant-code", default=os.getenv("MERCHANT_CODE", "DEMO0001"))
    parser.add_argument("--secret", default=os.getenv("SECRET_KEY"))
    parser.add_argument("--channel", choices=["ipn", "return"], default="ipn")
    parser.add_argument("--tamper", action="store_true")
    args = parser.parse_args()

    if not args.secret:
        raise SystemExit("Provide --secret or set SECRET_KEY")

    params = build_callback(args.order_id, args.amount, args.response_code, args.merchant_code, args.secret)
    if args.tamper:
        params["vnp_Amount"] = str(scale_amount(args.amount + 1))

    resp = httpx.get(f"{args.payments_url}/payments/vnpay/{args.channel}", params=params, timeout=10.0)
    print(resp.status_code)
    print(json.dumps(resp.json(), indent=2))


if __name__ == "__main__":
    main()
