REDIS_COLLECTION_KEY = "store:collection:{name}" # collection name - JSON array of records

# Collections used by the coordination core
USERS = "users"
SERVERS = "servers"
GROUPS = "groups"
CHANNELS = "channels"
MESSAGES = "messages"

# **Record shapes (camelCase, as written by the HTTP layer)**
# - users:    `id`, `username`, `token`, `createdAt`
# - servers:  `id`, `name`, `ownerId`, `members` (list of user ids), `createdAt`
# - groups:   `id`, `name`, `ownerId`, `members`, `createdAt`
# - channels: `id`, `serverId` or `groupId`, `name`, `type` (text|voice), `createdAt`
# - messages: `id`, `channelId`, `userId`, `username`, `content`, `createdAt`
