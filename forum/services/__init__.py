# Services package.
#
# One module per entity service, each owning a single table and a cache
# namespace named after its kind:
#
#   user_service    : identity: registration, login, token resolution
#   channel_service : channels, ownership-checked updates, join/leave
#   topic_service   : topics under a channel
#   message_service : messages under a topic
#   follow_service  : channel membership (follows)
#
# Every public function takes a ``CallContext`` first.  Services reach each
# other only through the clients on that context (``ctx.users``,
# ``ctx.channels`` ...) and announce writes on the invalidation bus; each
# module subscribes its own namespace to every kind at import time.
#
# Sessions are flushed, never committed, here; ``get_db`` owns the
# transaction boundary.
