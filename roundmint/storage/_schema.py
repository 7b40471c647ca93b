SCHEMA_VERSION = 2

SCHEMA_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version   INTEGER NOT NULL,
    applied_at REAL NOT NULL
);

-- Accounts: one per authenticated user
CREATE TABLE IF NOT EXISTS accounts (
    account_id        TEXT PRIMARY KEY,
    identity          TEXT NOT NULL UNIQUE,
    username          TEXT NOT NULL DEFAULT '',
    energy            INTEGER NOT NULL DEFAULT 0,
    max_energy        INTEGER NOT NULL DEFAULT 0,
    energy_updated_at REAL NOT NULL,
    tokens            REAL NOT NULL DEFAULT 0.0,
    total_mined       REAL NOT NULL DEFAULT 0.0,
    mining_sessions   INTEGER NOT NULL DEFAULT 0,
    unlocked_modes    TEXT NOT NULL DEFAULT '["basic"]',
    referral_code     TEXT NOT NULL UNIQUE,
    referred_by       TEXT,
    referral_count    INTEGER NOT NULL DEFAULT 0,
    referral_earnings REAL NOT NULL DEFAULT 0.0,
    api_key           TEXT NOT NULL DEFAULT '',
    created_at        REAL NOT NULL,
    updated_at        REAL NOT NULL
);

-- Rounds: one row per block, strictly increasing sequence
CREATE TABLE IF NOT EXISTS rounds (
    sequence             INTEGER PRIMARY KEY,
    difficulty           INTEGER NOT NULL,
    era                  INTEGER NOT NULL,
    base_reward          REAL NOT NULL,
    status               TEXT NOT NULL DEFAULT 'open' CHECK (status IN ('open', 'locked', 'closed')),
    winner_id            TEXT,
    winning_value        TEXT,
    winning_nonce        INTEGER,
    pool_snapshot        TEXT,
    total_attempts       INTEGER NOT NULL DEFAULT 0,
    total_participations INTEGER NOT NULL DEFAULT 0,
    created_at           REAL NOT NULL,
    locked_at            REAL,
    closed_at            REAL
);

-- Participants: ephemeral pool of the current round
CREATE TABLE IF NOT EXISTS participants (
    round_sequence INTEGER NOT NULL,
    account_id     TEXT NOT NULL,
    identity       TEXT NOT NULL,
    mode           TEXT NOT NULL,
    joined_at      REAL NOT NULL,
    last_heartbeat REAL NOT NULL,
    ticks          INTEGER NOT NULL DEFAULT 0,
    energy_spent   INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (round_sequence, account_id),
    FOREIGN KEY (round_sequence) REFERENCES rounds(sequence),
    FOREIGN KEY (account_id) REFERENCES accounts(account_id)
);

-- Supply: singleton mint counter
CREATE TABLE IF NOT EXISTS supply (
    id           INTEGER PRIMARY KEY CHECK (id = 1),
    minted_total REAL NOT NULL DEFAULT 0.0,
    cap          REAL NOT NULL,
    last_round   INTEGER NOT NULL DEFAULT 0,
    updated_at   REAL NOT NULL,
    CHECK (minted_total <= cap)
);

-- Settlements: idempotency record, one per closed round
CREATE TABLE IF NOT EXISTS settlements (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    round_sequence  INTEGER NOT NULL UNIQUE,
    finder_id       TEXT NOT NULL,
    finder_reward   REAL NOT NULL,
    pool_count      INTEGER NOT NULL DEFAULT 0,
    pool_share_each REAL NOT NULL DEFAULT 0.0,
    total_paid      REAL NOT NULL,
    capped_reward   REAL NOT NULL,
    settled_at      REAL NOT NULL,
    FOREIGN KEY (round_sequence) REFERENCES rounds(sequence)
);

-- Mining activity: one row per reward credit
CREATE TABLE IF NOT EXISTS mining_activity (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    account_id     TEXT NOT NULL,
    round_sequence INTEGER NOT NULL,
    mode           TEXT NOT NULL,
    energy_spent   INTEGER NOT NULL DEFAULT 0,
    tokens_earned  REAL NOT NULL,
    is_finder      INTEGER NOT NULL DEFAULT 0,
    digest         TEXT,
    nonce          INTEGER,
    created_at     REAL NOT NULL,
    FOREIGN KEY (account_id) REFERENCES accounts(account_id)
);

-- Referral commissions: audit trail of referrer credits
CREATE TABLE IF NOT EXISTS referral_commissions (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    referrer_id    TEXT NOT NULL,
    referred_id    TEXT NOT NULL,
    round_sequence INTEGER,
    commission     REAL NOT NULL,
    source         TEXT NOT NULL DEFAULT 'mining' CHECK (source IN ('mining', 'signup')),
    created_at     REAL NOT NULL,
    FOREIGN KEY (referrer_id) REFERENCES accounts(account_id)
);

-- Shop credits: applied payment attestations
CREATE TABLE IF NOT EXISTS shop_credits (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    attestation_id TEXT NOT NULL UNIQUE,
    account_id     TEXT NOT NULL,
    item           TEXT NOT NULL,
    created_at     REAL NOT NULL,
    FOREIGN KEY (account_id) REFERENCES accounts(account_id)
);

-- Indexes for common queries
CREATE INDEX IF NOT EXISTS idx_accounts_api_key ON accounts(api_key);
CREATE INDEX IF NOT EXISTS idx_accounts_referred_by ON accounts(referred_by);
CREATE INDEX IF NOT EXISTS idx_rounds_status ON rounds(status);
CREATE INDEX IF NOT EXISTS idx_rounds_closed ON rounds(closed_at) WHERE status = 'closed';
CREATE INDEX IF NOT EXISTS idx_participants_heartbeat ON participants(round_sequence, last_heartbeat);
CREATE INDEX IF NOT EXISTS idx_activity_account ON mining_activity(account_id, created_at);
CREATE INDEX IF NOT EXISTS idx_commissions_referrer ON referral_commissions(referrer_id, created_at);
CREATE UNIQUE INDEX IF NOT EXISTS idx_rounds_single_active ON rounds((status != 'closed')) WHERE status != 'closed';
"""
