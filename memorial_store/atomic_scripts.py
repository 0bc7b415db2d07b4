"""
Lua scripts for atomic Redis operations.
"""
from typing import Dict, Optional

# Script to release the submission lock only when the caller still holds it
RELEASE_LOCK_SCRIPT = """
local lock_key = KEYS[1]
local token = ARGV[1]

if redis.call('GET', lock_key) == token then
    return redis.call('DEL', lock_key)
end
return 0
"""

# Script to store wizard state only if the session was not removed meanwhile
SAVE_SESSION_SCRIPT = """
local session_key = KEYS[1]
local payload = ARGV[1]
local ttl = tonumber(ARGV[2])
local must_exist = ARGV[3] == '1'

if must_exist and redis.call('EXISTS', session_key) == 0 then
    return 0
end

redis.call('SET', session_key, payload, 'EX', ttl)
return 1
"""


class AtomicScripts:
    """Container for Lua scripts"""

    def __init__(self, redis_wrapper):
        """
        Initialize with RedisClient wrapper (not raw redis.Redis client)
        so every call goes through the wrapper's retry logic
        """
        self.redis_wrapper = redis_wrapper
        self._scripts: Dict[str, Optional[str]] = {
            "release_lock": RELEASE_LOCK_SCRIPT,
            "save_session": SAVE_SESSION_SCRIPT
        }

    def release_lock(self, lock_key: str, token: str) -> int:
        """Execute release lock script, returns 1 when the lock was deleted"""
        return int(self.redis_wrapper.eval(
            self._scripts["release_lock"],
            1,
            lock_key,
            token
        ) or 0)

    def save_session(self, session_key: str, payload: str, ttl: int, must_exist: bool = True) -> bool:
        """Execute save session script"""
        result = self.redis_wrapper.eval(
            self._scripts["save_session"],
            1,
            session_key,
            payload,
            str(ttl),
            "1" if must_exist else "0"
        )
        return bool(int(result or 0))
