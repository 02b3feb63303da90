import os

import dotenv
import httpx

from httpx_eventsource._session import ACCEPT

dotenv.load_dotenv()

url = os.environ["EVENTSOURCE_TEST_URL"]

# Lo que llega por el socket, sin parser ni reconexión.
with httpx.stream("GET", url, headers={"Accept": ACCEPT, "Cache-Control": "no-store"}, timeout=60) as r:
    print("status=", r.status_code, "url=", r.url)
    print("headers=", dict(r.headers))
    for i, line in enumerate(r.iter_lines()):
        print("i=", i, "line=", repr(line))
        if i >= 50:
            break
