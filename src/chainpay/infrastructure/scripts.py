"""Central registry for Redis Lua scripts used across the application.

This module contains Redis Lua scripts that are registered at application startup
for EVALSHA optimization. Each script performs its reads and its write inside
one Redis command, which is what makes it safe against concurrent callers in
any number of processes.

Return Code Conventions:
    The scripts return a two-element array ``{code, payload}``:

    - 0: Rejected - The intent exists but is not in a state that allows the
         operation. The payload is the current intent JSON.

    - 1: Success saved - The payload is the stored intent JSON. For
         "claim_signature" this is also returned when the same intent claims
         the same signature again.

    - 2: Intent not found - The payload is an empty string.

    - 3: Already held - For "claim_signature", another intent owns the
         signature and the payload is that intent's id. For
         "acquire_fulfillment_lease", another caller holds an unexpired lease
         and the payload is the current intent JSON.

    - 4: Expired - "claim_signature" only. The claim arrived after the
         intent's expiry score. The payload is the current intent JSON.

"release_fulfillment_lease" returns ``{1, ''}`` when it deleted the caller's
lease and ``{0, ''}`` when the lease had expired or belongs to someone else.
"""

PAYMENT_SCRIPTS = {
    "claim_signature": """
        local intent_key = KEYS[1]
        local signature_key = KEYS[2]
        local expiry_index = KEYS[3]
        local intent_id = ARGV[1]
        local signature = ARGV[2]
        local counterparty = ARGV[3]
        local now_ts = tonumber(ARGV[4])
        local now_iso = ARGV[5]
        local claimable = ARGV[6]

        local intent_raw = redis.call('GET', intent_key)
        if not intent_raw then
            return {2, ''}
        end

        -- The signature index is the uniqueness constraint
        local owner = redis.call('GET', signature_key)
        if owner and owner ~= intent_id then
            return {3, owner}
        end

        local intent = cjson.decode(intent_raw)
        local bound = intent.claimed_signature
        if bound and bound ~= cjson.null then
            if bound == signature then
                return {1, intent_raw}
            end
            return {0, intent_raw}
        end

        local allowed = false
        for state in string.gmatch(claimable, '[^,]+') do
            if intent.status == state then
                allowed = true
            end
        end
        if not allowed then
            return {0, intent_raw}
        end

        local expires_ts = tonumber(redis.call('ZSCORE', expiry_index, intent_id))
        if expires_ts and now_ts > expires_ts then
            return {4, intent_raw}
        end

        intent.claimed_signature = signature
        intent.counterparty_address = counterparty
        intent.status = 'VERIFIED'
        intent.verified_at = now_iso
        intent.updated_at = now_iso

        local new_raw = cjson.encode(intent)
        redis.call('SET', signature_key, intent_id)
        redis.call('SET', intent_key, new_raw)
        return {1, new_raw}
    """,
    "transition_status": """
        local intent_key = KEYS[1]
        local sources = ARGV[1]
        local target = ARGV[2]
        local fields = cjson.decode(ARGV[3])

        local intent_raw = redis.call('GET', intent_key)
        if not intent_raw then
            return {2, ''}
        end

        local intent = cjson.decode(intent_raw)
        local allowed = false
        for state in string.gmatch(sources, '[^,]+') do
            if intent.status == state then
                allowed = true
            end
        end
        if not allowed then
            return {0, intent_raw}
        end

        intent.status = target
        for field, value in pairs(fields) do
            intent[field] = value
        end

        local new_raw = cjson.encode(intent)
        redis.call('SET', intent_key, new_raw)
        return {1, new_raw}
    """,
    "acquire_fulfillment_lease": """
        local intent_key = KEYS[1]
        local lease_key = KEYS[2]
        local lease_id = ARGV[1]
        local ttl_ms = tonumber(ARGV[2])

        local intent_raw = redis.call('GET', intent_key)
        if not intent_raw then
            return {2, ''}
        end

        local intent = cjson.decode(intent_raw)
        if intent.status ~= 'VERIFIED' then
            return {0, intent_raw}
        end

        if not redis.call('SET', lease_key, lease_id, 'NX', 'PX', ttl_ms) then
            return {3, intent_raw}
        end
        return {1, intent_raw}
    """,
    "release_fulfillment_lease": """
        local lease_key = KEYS[1]
        local lease_id = ARGV[1]

        if redis.call('GET', lease_key) == lease_id then
            redis.call('DEL', lease_key)
            return {1, ''}
        end
        return {0, ''}
    """,
}
