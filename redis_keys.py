REDIS_NONCE_KEY = "verify:nonce:{nonce}" # nonce value - first-use timestamp, expires after retention window

# **Example `verify:nonce:{nonce}` value**
# - `1718000000.123` = unix timestamp of first use (SET NX EX, so the key
#   can only be written once per retention window)
