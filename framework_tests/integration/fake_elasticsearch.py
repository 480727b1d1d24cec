"""Minimal stand-in for the search server binary used by integration tests.

Understands ``-E key=value`` settings for network.host, http.port,
path.data and path.logs (last occurrence wins). FAKE_ES_MODE selects
the behaviour:

    ready           serve HTTP 200 on / and print "started" (default)
    http-only       serve HTTP 200 without ever printing the marker
    crash           complain on stderr and exit 3 before becoming ready
    orphan-pipes    leave a background child holding stdout/stderr, then exit 3
    hang            never become ready
    ignore-sigterm  like ready, but survive SIGTERM
"""

import json
import os
import signal
import subprocess
import sys
import time
from http.server import BaseHTTPRequestHandler, HTTPServer


def parse_settings(argv):
    settings = {}
    args = iter(argv)
    for arg in args:
        if arg == "-E":
            setting = next(args, "")
        elif arg.startswith("-E"):
            setting = arg[2:]
        else:
            continue
        key, _, value = setting.partition("=")
        settings[key] = value
    return settings


class Handler(BaseHTTPRequestHandler):
    def do_GET(self):
        body = json.dumps({"name": "fake-node", "tagline": "You Know, for Search"}).encode()
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        pass


def main():
    settings = parse_settings(sys.argv[1:])
    mode = os.environ.get("FAKE_ES_MODE", "ready")

    for key in ("path.data", "path.logs"):
        if key in settings:
            os.makedirs(settings[key], exist_ok=True)
    if "path.data" in settings:
        with open(os.path.join(settings["path.data"], "invocation.json"), "w") as f:
            json.dump({"argv": sys.argv[1:], "mode": mode}, f)

    print("[fake-node] starting ...", flush=True)

    if mode == "crash":
        print("fatal error in thread [main], exiting", file=sys.stderr, flush=True)
        sys.exit(3)
    if mode == "orphan-pipes":
        subprocess.Popen([sys.executable, "-c", "import time; time.sleep(30)"])
        print("launcher gave up, exiting", file=sys.stderr, flush=True)
        sys.exit(3)
    if mode == "hang":
        while True:
            time.sleep(1)
    if mode == "ignore-sigterm":
        signal.signal(signal.SIGTERM, signal.SIG_IGN)

    host = settings.get("network.host", "127.0.0.1")
    port = int(settings.get("http.port", "9200"))
    server = HTTPServer((host, port), Handler)
    if mode != "http-only":
        print("[fake-node] started", flush=True)
    server.serve_forever()


if __name__ == "__main__":
    main()
