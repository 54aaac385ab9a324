# FILE: scripts/problem_dump.py
# Usage: python -m httpkernel.demo & then python scripts/problem_dump.py http://127.0.0.1:8000/api/mustFail
import json, sys, urllib.error, urllib.request
url = sys.argv[1] if len(sys.argv) > 1 else "http://127.0.0.1:8000/api/mustFail"
req = urllib.request.Request(url, headers={"Accept": "application/json"})
try:
    body = urllib.request.urlopen(req).read()
except urllib.error.HTTPError as e:
    body = e.read()
print(json.dumps(json.loads(body), indent=2))
