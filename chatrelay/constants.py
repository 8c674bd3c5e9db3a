# chatrelay protocol constants (line prefixes, commands and notice texts)

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 5555

LINE_ENCODING = "utf-8"
LINE_TERMINATOR = b"\n"

# Server -> client line prefixes. Clients match them in this order.
P_USERS = "USERS "
P_DM = "DM "
P_SYS = "SYS "

# Client -> server commands
CMD_NICK = "/nick "
CMD_WHISPER = "/w "

USERS_SEPARATOR = ","

# System notice texts (without the SYS prefix)
N_WELCOME = "Welcome! Set nickname with /nick <name>"
N_NICK_TAKEN = "Nickname already taken. Enter another:"
N_NICK_INVALID_RETRY = "Invalid nickname. Enter another:"
N_NICK_REJECTED = "Invalid or duplicate nickname."
N_WHISPER_USAGE = "Private message format: /w <nickname> <message>"
N_JOINED = "{nick} has joined the chat."
N_LEFT = "{nick} has left the chat."
N_RENAMED = "{old} changed nickname to {new}"
N_NO_SUCH_USER = "No such user: {nick}"

PRIVATE_ECHO = "[Private to {target}] {body}"
N_NICK_USAGE = "Nickname format: /nick <newname>"
