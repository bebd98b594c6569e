#!/usr/bin/env python3
"""Run the Postgres schema for Kover. Safe to re-run: every statement is idempotent."""

import os
import sys

import psycopg2

DATABASE_URL = os.environ.get('DATABASE_URL')

# Define each SQL statement explicitly
STATEMENTS = [
    # PART 1: EXTENSIONS
    ('Enable uuid-ossp extension',
     'CREATE EXTENSION IF NOT EXISTS "uuid-ossp"'),

    # PART 2: ACCOUNTS
    ('Create users table', '''
CREATE TABLE IF NOT EXISTS users (
  id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
  name VARCHAR(255) NOT NULL,
  email VARCHAR(255) NOT NULL UNIQUE,
  password_hash VARCHAR(255),
  is_active BOOLEAN NOT NULL DEFAULT TRUE,
  email_verified_at TIMESTAMPTZ,
  remember_token VARCHAR(100),
  mfa_secret TEXT,
  company_id INTEGER,
  current_company_id INTEGER,
  team_id INTEGER,
  language_id INTEGER,
  last_login_at TIMESTAMPTZ,
  created_at TIMESTAMPTZ DEFAULT NOW(),
  updated_at TIMESTAMPTZ DEFAULT NOW()
)'''),

    ('Create personal_access_tokens table', '''
CREATE TABLE IF NOT EXISTS personal_access_tokens (
  id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
  owner_type VARCHAR(50) NOT NULL DEFAULT 'user',
  user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
  name VARCHAR(255) NOT NULL,
  token_hash VARCHAR(64) NOT NULL UNIQUE,
  abilities JSONB NOT NULL DEFAULT '["*"]',
  created_at TIMESTAMPTZ DEFAULT NOW(),
  last_used_at TIMESTAMPTZ
)'''),

    ('Create password_reset_tokens table', '''
CREATE TABLE IF NOT EXISTS password_reset_tokens (
  id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
  user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
  token_hash VARCHAR(64) NOT NULL UNIQUE,
  expires_at TIMESTAMPTZ NOT NULL,
  used_at TIMESTAMPTZ,
  created_at TIMESTAMPTZ DEFAULT NOW()
)'''),

    ('Create social_accounts table', '''
CREATE TABLE IF NOT EXISTS social_accounts (
  id SERIAL PRIMARY KEY,
  user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
  provider VARCHAR(50) NOT NULL,
  provider_id VARCHAR(255) NOT NULL,
  created_at TIMESTAMPTZ DEFAULT NOW(),
  updated_at TIMESTAMPTZ DEFAULT NOW(),
  UNIQUE(user_id, provider)
)'''),

    ('Create audit_logs table', '''
CREATE TABLE IF NOT EXISTS audit_logs (
  id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
  user_id UUID REFERENCES users(id) ON DELETE SET NULL,
  event VARCHAR(100) NOT NULL,
  ip_address VARCHAR(45),
  user_agent TEXT,
  meta JSONB DEFAULT '{}',
  created_at TIMESTAMPTZ DEFAULT NOW()
)'''),

    ('Create user_roles table', '''
CREATE TABLE IF NOT EXISTS user_roles (
  user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
  role VARCHAR(50) NOT NULL,
  created_at TIMESTAMPTZ DEFAULT NOW(),
  PRIMARY KEY (user_id, role)
)'''),

    ('Create user_permissions table', '''
CREATE TABLE IF NOT EXISTS user_permissions (
  user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
  permission VARCHAR(100) NOT NULL,
  created_at TIMESTAMPTZ DEFAULT NOW(),
  PRIMARY KEY (user_id, permission)
)'''),

    # PART 3: TENANTS
    ('Create teams table', '''
CREATE TABLE IF NOT EXISTS teams (
  id SERIAL PRIMARY KEY,
  uuid UUID NOT NULL UNIQUE,
  user_id UUID NOT NULL REFERENCES users(id),
  created_at TIMESTAMPTZ DEFAULT NOW(),
  updated_at TIMESTAMPTZ DEFAULT NOW()
)'''),

    ('Create companies table', '''
CREATE TABLE IF NOT EXISTS companies (
  id SERIAL PRIMARY KEY,
  team_id INTEGER NOT NULL REFERENCES teams(id),
  owner_id UUID NOT NULL REFERENCES users(id),
  name VARCHAR(120) NOT NULL,
  website VARCHAR(255) UNIQUE,
  city VARCHAR(50) NOT NULL,
  country_id INTEGER NOT NULL,
  industry VARCHAR(50) NOT NULL,
  size INTEGER NOT NULL,
  primary_interest VARCHAR(50),
  default_currency_id INTEGER NOT NULL,
  created_at TIMESTAMPTZ DEFAULT NOW(),
  updated_at TIMESTAMPTZ DEFAULT NOW()
)'''),

    ('Create api_clients table', '''
CREATE TABLE IF NOT EXISTS api_clients (
  id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
  company_id INTEGER NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
  name VARCHAR(255) NOT NULL,
  public_key VARCHAR(64) NOT NULL UNIQUE,
  private_key_hash VARCHAR(64) NOT NULL,
  created_at TIMESTAMPTZ DEFAULT NOW()
)'''),

    ('Create subscriptions table', '''
CREATE TABLE IF NOT EXISTS subscriptions (
  id SERIAL PRIMARY KEY,
  team_id INTEGER NOT NULL REFERENCES teams(id) ON DELETE CASCADE,
  slug VARCHAR(50) NOT NULL,
  name VARCHAR(255),
  description TEXT,
  plan_tag VARCHAR(50) NOT NULL,
  status VARCHAR(50) NOT NULL DEFAULT 'free',
  trial_ends_at TIMESTAMPTZ,
  stripe_customer_id VARCHAR(255),
  stripe_subscription_id VARCHAR(255) UNIQUE,
  current_period_start TIMESTAMPTZ,
  current_period_end TIMESTAMPTZ,
  canceled_at TIMESTAMPTZ,
  created_at TIMESTAMPTZ DEFAULT NOW(),
  updated_at TIMESTAMPTZ DEFAULT NOW(),
  UNIQUE(team_id, slug)
)'''),

    ('Create company_modules table', '''
CREATE TABLE IF NOT EXISTS company_modules (
  company_id INTEGER NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
  module VARCHAR(50) NOT NULL,
  installed_by UUID REFERENCES users(id) ON DELETE SET NULL,
  installed_at TIMESTAMPTZ DEFAULT NOW(),
  PRIMARY KEY (company_id, module)
)'''),

    # PART 4: JOB QUEUE
    ('Create jobs table', '''
CREATE TABLE IF NOT EXISTS jobs (
  id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
  name VARCHAR(100) NOT NULL,
  payload JSONB NOT NULL DEFAULT '{}',
  status VARCHAR(20) NOT NULL DEFAULT 'open',
  attempts INTEGER NOT NULL DEFAULT 0,
  last_error TEXT,
  run_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
  locked_at TIMESTAMPTZ,
  finished_at TIMESTAMPTZ,
  created_at TIMESTAMPTZ DEFAULT NOW(),
  updated_at TIMESTAMPTZ DEFAULT NOW()
)'''),

    # PART 5: INDEXES
    ('Create tokens user index', 'CREATE INDEX IF NOT EXISTS idx_tokens_user ON personal_access_tokens(user_id)'),
    ('Create reset tokens user index', 'CREATE INDEX IF NOT EXISTS idx_reset_tokens_user ON password_reset_tokens(user_id)'),
    ('Create audit_logs user index', 'CREATE INDEX IF NOT EXISTS idx_audit_logs_user ON audit_logs(user_id, created_at DESC)'),
    ('Create companies team index', 'CREATE INDEX IF NOT EXISTS idx_companies_team ON companies(team_id)'),
    ('Create api_clients company index', 'CREATE INDEX IF NOT EXISTS idx_api_clients_company ON api_clients(company_id)'),
    ('Create jobs runnable index', 'CREATE INDEX IF NOT EXISTS idx_jobs_runnable ON jobs(status, run_at)'),
]


def main():
    if not DATABASE_URL:
        print("DATABASE_URL environment variable not set", file=sys.stderr)
        sys.exit(1)

    print("Connecting to Postgres...")
    conn = psycopg2.connect(DATABASE_URL)
    conn.autocommit = True
    cur = conn.cursor()

    print("Running schema...\n")
    success_count = 0
    error_count = 0

    for desc, sql in STATEMENTS:
        print(f"  {desc}...", end=" ")
        try:
            cur.execute(sql)
            print("OK")
            success_count += 1
        except psycopg2.Error as e:
            print(f"ERROR: {e}")
            error_count += 1

    print(f"\nSchema execution complete! {success_count} succeeded, {error_count} errors")

    # Verify tables
    cur.execute("SELECT table_name FROM information_schema.tables WHERE table_schema = 'public' ORDER BY table_name;")
    tables = cur.fetchall()
    print(f"\nTables: {[t[0] for t in tables]}")

    cur.close()
    conn.close()
    print("\nConnection closed.")

    if error_count:
        sys.exit(1)


if __name__ == '__main__':
    main()
