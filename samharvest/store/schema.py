"""SQLite schema for harvested data and harvesting state."""

SCHEMA = """
CREATE TABLE IF NOT EXISTS opportunities (
    notice_id TEXT NOT NULL PRIMARY KEY,
    title TEXT,
    solicitation_number TEXT,
    department TEXT,
    sub_tier TEXT,
    office TEXT,
    full_parent_path_name TEXT,
    organization_type TEXT,
    opp_type TEXT,
    base_type TEXT,
    posted_date TEXT,
    response_deadline TEXT,
    archive_date TEXT,
    naics_code TEXT,
    classification_code TEXT,
    set_aside TEXT,
    set_aside_description TEXT,
    description TEXT,
    ui_link TEXT,
    active TEXT,
    resource_links TEXT,
    award_amount TEXT,
    award_date TEXT,
    award_number TEXT,
    awardee_name TEXT,
    awardee_duns TEXT,
    awardee_uei_sam TEXT,
    pop_state_code TEXT,
    pop_state_name TEXT,
    pop_city_code TEXT,
    pop_city_name TEXT,
    pop_country_code TEXT,
    pop_country_name TEXT,
    pop_zip TEXT,
    raw_json TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    modified_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS contacts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    notice_id TEXT NOT NULL REFERENCES opportunities(notice_id) ON DELETE CASCADE,
    contact_type TEXT,
    full_name TEXT,
    email TEXT,
    phone TEXT,
    title TEXT
);

CREATE INDEX IF NOT EXISTS idx_opp_posted_date ON opportunities(posted_date);
CREATE INDEX IF NOT EXISTS idx_opp_naics_code ON opportunities(naics_code);
CREATE INDEX IF NOT EXISTS idx_opp_opp_type ON opportunities(opp_type);
CREATE INDEX IF NOT EXISTS idx_opp_set_aside ON opportunities(set_aside);
CREATE INDEX IF NOT EXISTS idx_opp_active ON opportunities(active);
CREATE INDEX IF NOT EXISTS idx_opp_pop_state ON opportunities(pop_state_code);
CREATE INDEX IF NOT EXISTS idx_opp_department ON opportunities(department);
CREATE INDEX IF NOT EXISTS idx_contacts_notice ON contacts(notice_id);

CREATE TABLE IF NOT EXISTS api_calls (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    context TEXT NOT NULL,
    window_from TEXT,
    window_to TEXT,
    pages_consumed INTEGER NOT NULL DEFAULT 0,
    records_returned INTEGER NOT NULL DEFAULT 0,
    rate_limited INTEGER NOT NULL DEFAULT 0,
    error TEXT
);

CREATE TABLE IF NOT EXISTS sync_state (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS run_lock (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    run_id TEXT NOT NULL,
    acquired_at TEXT NOT NULL
);
"""
