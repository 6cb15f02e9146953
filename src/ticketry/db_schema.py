"""Database schema definitions for the ticketry issue tracker.

Contains the canonical SQL schema and the current schema version constant.
"""

from __future__ import annotations

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS projects (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    name         TEXT NOT NULL UNIQUE,
    workflow     TEXT NOT NULL,
    next_number  INTEGER NOT NULL DEFAULT 1,
    created_at   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS milestones (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id  INTEGER NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    name        TEXT NOT NULL,
    due_date    TEXT,
    closed      BOOLEAN NOT NULL DEFAULT 0,
    UNIQUE (project_id, name)
);

CREATE TABLE IF NOT EXISTS issues (
    id                    INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id            INTEGER NOT NULL REFERENCES projects(id),
    number                INTEGER NOT NULL,
    number_str            TEXT NOT NULL,
    uuid                  TEXT NOT NULL UNIQUE,
    state                 TEXT NOT NULL,
    title                 TEXT NOT NULL,
    no_space_title        TEXT NOT NULL,
    description           TEXT DEFAULT '',
    milestone_id          INTEGER REFERENCES milestones(id) ON DELETE SET NULL,
    submitter             TEXT,
    submit_date           TEXT NOT NULL,
    num_votes             INTEGER NOT NULL DEFAULT 0,
    num_comments          INTEGER NOT NULL DEFAULT 0,
    last_act_date         TEXT NOT NULL,
    last_act_description  TEXT NOT NULL DEFAULT '',
    last_act_user         TEXT,
    version               INTEGER NOT NULL DEFAULT 0,
    UNIQUE (project_id, number)
);

CREATE INDEX IF NOT EXISTS idx_issues_project ON issues(project_id);
CREATE INDEX IF NOT EXISTS idx_issues_state ON issues(state);
CREATE INDEX IF NOT EXISTS idx_issues_title ON issues(title);
CREATE INDEX IF NOT EXISTS idx_issues_no_space_title ON issues(no_space_title);
CREATE INDEX IF NOT EXISTS idx_issues_number ON issues(number);
CREATE INDEX IF NOT EXISTS idx_issues_number_str ON issues(number_str);
CREATE INDEX IF NOT EXISTS idx_issues_submit_date ON issues(submit_date);
CREATE INDEX IF NOT EXISTS idx_issues_submitter ON issues(submitter);
CREATE INDEX IF NOT EXISTS idx_issues_votes ON issues(num_votes);
CREATE INDEX IF NOT EXISTS idx_issues_comments ON issues(num_comments);
CREATE INDEX IF NOT EXISTS idx_issues_milestone ON issues(milestone_id);
CREATE INDEX IF NOT EXISTS idx_issues_last_act ON issues(last_act_date);

CREATE TABLE IF NOT EXISTS issue_fields (
    id        INTEGER PRIMARY KEY AUTOINCREMENT,
    issue_id  INTEGER NOT NULL REFERENCES issues(id) ON DELETE CASCADE,
    name      TEXT NOT NULL,
    value     TEXT,
    type      TEXT NOT NULL,
    ordinal   INTEGER NOT NULL DEFAULT -1
);

CREATE INDEX IF NOT EXISTS idx_issue_fields_issue ON issue_fields(issue_id, name);
CREATE INDEX IF NOT EXISTS idx_issue_fields_ordinal ON issue_fields(name, ordinal);

CREATE TABLE IF NOT EXISTS comments (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    issue_id    INTEGER NOT NULL REFERENCES issues(id) ON DELETE CASCADE,
    author      TEXT DEFAULT '',
    text        TEXT NOT NULL,
    created_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_comments_issue ON comments(issue_id, created_at);

CREATE TABLE IF NOT EXISTS changes (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    issue_id     INTEGER NOT NULL REFERENCES issues(id) ON DELETE CASCADE,
    change_type  TEXT NOT NULL,
    actor        TEXT DEFAULT '',
    old_value    TEXT,
    new_value    TEXT,
    created_at   TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_changes_issue_time ON changes(issue_id, created_at DESC);

CREATE TABLE IF NOT EXISTS votes (
    issue_id    INTEGER NOT NULL REFERENCES issues(id) ON DELETE CASCADE,
    user        TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    PRIMARY KEY (issue_id, user)
);

CREATE TABLE IF NOT EXISTS watches (
    issue_id  INTEGER NOT NULL REFERENCES issues(id) ON DELETE CASCADE,
    user      TEXT NOT NULL,
    watching  BOOLEAN NOT NULL DEFAULT 1,
    PRIMARY KEY (issue_id, user)
);
"""

CURRENT_SCHEMA_VERSION = 1
