import argparse
import json
from typing import Optional

import requests

from evsim.config import API_BASE

DEFAULT_USER = "user-1"
DEFAULT_STATION = "station-1"


def _do_json(method: str, url: str, body: Optional[str]) -> requests.Response:
    headers = {
        "Content-Type": "application/json",
        "Connection": "close",
    }
    resp = requests.request(method, url, data=body, headers=headers, timeout=15)
    print(f"{method} {url} -> {resp.status_code} {resp.reason}")
    print(resp.text)
    return resp


def get_status(base: str, user_id: Optional[str]) -> requests.Response:
    url = f"{base}/api/status"
    if user_id:
        url += f"?userId={user_id}"
    return _do_json("GET", url, None)


def start_charge(base: str, user_id: str, station_id: str, mode: str) -> requests.Response:
    payload = {
        "userId": user_id,
        "stationId": station_id,
        "mode": mode,
    }
    return _do_json("POST", f"{base}/api/charging/start", json.dumps(payload))


def stop_charge(base: str, user_id: Optional[str]) -> requests.Response:
    payload = {"userId": user_id} if user_id else {}
    return _do_json("POST", f"{base}/api/charging/stop", json.dumps(payload))


def top_up(base: str, user_id: str, amount: float, method: str) -> requests.Response:
    payload = {"amount": amount, "paymentMethod": method}
    return _do_json("POST", f"{base}/api/users/{user_id}/wallet", json.dumps(payload))


def list_stations(base: str) -> requests.Response:
    return _do_json("GET", f"{base}/api/stations", None)


def history(base: str, user_id: str) -> requests.Response:
    return _do_json("GET", f"{base}/api/users/{user_id}/history", None)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Drive the EV charging dashboard over its HTTP API")
    parser.add_argument("--api", default=API_BASE, help="API base URL")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_status = sub.add_parser("status", help="show charging status")
    p_status.add_argument("userId", nargs="?", default=None)

    p_start = sub.add_parser("start", help="start charging")
    p_start.add_argument("userId", nargs="?", default=DEFAULT_USER)
    p_start.add_argument("stationId", nargs="?", default=DEFAULT_STATION)
    p_start.add_argument("--mode", default="normal", choices=["fast", "normal", "eco"])

    p_stop = sub.add_parser("stop", help="stop charging")
    p_stop.add_argument("userId", nargs="?", default=None)

    p_topup = sub.add_parser("topup", help="top up the wallet")
    p_topup.add_argument("userId")
    p_topup.add_argument("amount", type=float)
    p_topup.add_argument("--method", default="upi", choices=["upi", "card", "netbanking"])

    sub.add_parser("stations", help="list stations")

    p_hist = sub.add_parser("history", help="charging history")
    p_hist.add_argument("userId", nargs="?", default=DEFAULT_USER)

    return parser.parse_args(argv)


def main(argv=None) -> None:
    args = parse_args(argv)
    base = args.api.rstrip("/")
    if args.cmd == "status":
        get_status(base, args.userId)
    elif args.cmd == "start":
        start_charge(base, args.userId, args.stationId, args.mode)
    elif args.cmd == "stop":
        stop_charge(base, args.userId)
    elif args.cmd == "topup":
        top_up(base, args.userId, args.amount, args.method)
    elif args.cmd == "stations":
        list_stations(base)
    elif args.cmd == "history":
        history(base, args.userId)


if __name__ == "__main__":
    main()
