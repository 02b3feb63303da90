import logging
import os
import time

import dotenv

from httpx_eventsource import EventSource

dotenv.load_dotenv()
logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(message)s")

url = os.environ["EVENTSOURCE_TEST_URL"]

with EventSource(url, default_retry_ms=2000) as source:
    source.on_open(lambda uri: print("open:", uri))
    source.on_error(lambda exc: print("error:", exc))
    # Cualquier mensaje, incluidos los comentarios
    source.on_message(lambda m: print(f"[{m.type}] id={m.last_event_id} data={m.data!r}"))

    for _ in range(30):
        time.sleep(1)
        print("status:", source.status.name, "retry_ms:", source.retry_ms)
