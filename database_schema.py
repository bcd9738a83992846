"""
SQL schema for the shared rate limit store (RATE_LIMIT_BACKEND=supabase).
Run these queries in your Supabase SQL editor.
"""

CREATE_RATE_LIMIT_WINDOWS_TABLE = """
-- One fixed window per limiter and client key ("<limiter>:<client>")
CREATE TABLE IF NOT EXISTS rate_limit_windows (
    client_id VARCHAR(255) PRIMARY KEY,
    count INTEGER NOT NULL DEFAULT 0 CHECK (count >= 0),
    window_reset_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

-- Index on reset time for cleanup of expired windows
CREATE INDEX IF NOT EXISTS idx_rate_limit_windows_reset_at
    ON rate_limit_windows(window_reset_at);

-- Enable Row Level Security
ALTER TABLE rate_limit_windows ENABLE ROW LEVEL SECURITY;

-- Policy: Service role can do everything (for API)
CREATE POLICY rate_limit_windows_service_role_all ON rate_limit_windows
    FOR ALL
    USING (auth.role() = 'service_role');
"""

CLEANUP_EXPIRED_WINDOWS = """
-- Optional maintenance: expired windows are overwritten on next use, never evicted
DELETE FROM rate_limit_windows WHERE window_reset_at < NOW() - INTERVAL '1 day';
"""


# Combined setup script
FULL_SCHEMA_SETUP = f"""
-- =====================================================
-- Garment Synthesis Rate Limit Schema Setup
-- =====================================================
-- Run this in your Supabase SQL Editor
-- =====================================================

{CREATE_RATE_LIMIT_WINDOWS_TABLE}

{CLEANUP_EXPIRED_WINDOWS}

-- =====================================================
-- Setup Complete!
-- =====================================================
"""

if __name__ == "__main__":
    print(FULL_SCHEMA_SETUP)
