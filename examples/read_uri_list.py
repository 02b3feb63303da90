import sys

from httpx_eventsource import EventSource, UriList

# Uso: python read_uri_list.py https://example.com/feeds.uri
for uri in UriList.stream_from(sys.argv[1]):
    print(uri)

# Una suscripción por cada entrada de la lista
sources = [EventSource(uri) for uri in UriList.get_from(sys.argv[1])]
for source in sources:
    source.add_event_listener("message", lambda m, uri=source.uri: print(uri, m.data))

input("Enter para salir\n")
for source in sources:
    source.close()
