"""
Database schema for SermonForge.
Designed for Supabase (Postgres) with Row Level Security.

Tables:
- users_metadata: Church profile, branding, notification prefs, onboarding state
- sermons: Uploaded sermons and their processing status
- generated_content: One AI-generated artifact per (sermon, content type)
- subscriptions: Stripe plan, billing period and trial state per user
- analytics_events: Append-only product usage log

Key design decisions:
1. Users live in auth.users; everything else references auth.users(id)
2. generated_content has a unique (sermon_id, content_type) key so saves are upserts
3. Sermon status is constrained to the lifecycle states
4. Metadata is soft-marked for deletion/export, never hard-deleted
"""

SCHEMA_SQL = """
-- Enable UUID extension
CREATE EXTENSION IF NOT EXISTS "uuid-ossp";

-- Per-user metadata
-- Created lazily on the first settings write
CREATE TABLE IF NOT EXISTS users_metadata (
    user_id UUID PRIMARY KEY REFERENCES auth.users(id) ON DELETE CASCADE,
    church_name TEXT,
    church_website TEXT,
    church_logo_url TEXT,
    church_size TEXT,
    denomination TEXT,
    primary_color TEXT DEFAULT '#1E3A8A' CHECK (
        primary_color IS NULL OR primary_color ~ '^#[0-9A-Fa-f]{6}$'
    ),
    secondary_color TEXT DEFAULT '#3B82F6' CHECK (
        secondary_color IS NULL OR secondary_color ~ '^#[0-9A-Fa-f]{6}$'
    ),
    font_preference TEXT DEFAULT 'inter' CHECK (
        font_preference IN ('inter', 'roboto', 'open-sans', 'lato', 'montserrat', 'poppins')
    ),
    display_name TEXT,
    profile_picture_url TEXT,
    timezone TEXT DEFAULT 'America/New_York',
    notify_processing_complete BOOLEAN DEFAULT TRUE,
    notify_payment_issues BOOLEAN DEFAULT TRUE,
    notify_usage_warnings BOOLEAN DEFAULT TRUE,
    notify_weekly_digest BOOLEAN DEFAULT FALSE,
    notify_product_updates BOOLEAN DEFAULT TRUE,
    onboarding_step INTEGER DEFAULT 0 CHECK (onboarding_step BETWEEN 0 AND 4),
    onboarding_completed BOOLEAN DEFAULT FALSE,
    onboarding_completed_at TIMESTAMPTZ,
    product_tour_completed BOOLEAN DEFAULT FALSE,
    two_factor_enabled BOOLEAN DEFAULT FALSE,
    account_deletion_requested_at TIMESTAMPTZ,
    data_export_requested_at TIMESTAMPTZ,
    sermons_processed_count INTEGER DEFAULT 0,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

-- Sermons
CREATE TABLE IF NOT EXISTS sermons (
    id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
    user_id UUID REFERENCES auth.users(id) ON DELETE CASCADE NOT NULL,
    title TEXT NOT NULL CHECK (char_length(title) BETWEEN 1 AND 200),
    sermon_date DATE NOT NULL,
    input_type TEXT NOT NULL CHECK (
        input_type IN ('audio', 'video', 'pdf', 'youtube', 'text_paste')
    ),
    audio_url TEXT,
    video_url TEXT,
    pdf_url TEXT,
    youtube_url TEXT,
    transcript TEXT,
    status TEXT NOT NULL DEFAULT 'draft' CHECK (
        status IN ('draft', 'processing', 'transcribing', 'generating', 'complete', 'error')
    ),
    job_event_id TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

-- Generated content
-- Exactly one row per sermon and content type
CREATE TABLE IF NOT EXISTS generated_content (
    id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
    sermon_id UUID REFERENCES sermons(id) ON DELETE CASCADE NOT NULL,
    content_type TEXT NOT NULL CHECK (
        content_type IN ('sermon_notes', 'devotional', 'discussion_guide', 'social_media', 'kids_version')
    ),
    content JSONB NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW(),

    UNIQUE(sermon_id, content_type)
);

-- Subscriptions
-- Mirrors the Stripe subscription; written by checkout and webhooks
CREATE TABLE IF NOT EXISTS subscriptions (
    id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
    user_id UUID REFERENCES auth.users(id) ON DELETE CASCADE UNIQUE NOT NULL,
    stripe_customer_id TEXT,
    stripe_subscription_id TEXT UNIQUE,
    stripe_price_id TEXT,
    plan_id TEXT DEFAULT 'starter' CHECK (plan_id IN ('starter', 'growth', 'enterprise')),
    status TEXT DEFAULT 'incomplete',
    sermon_limit INTEGER DEFAULT 4,
    sermon_count INTEGER DEFAULT 0,
    current_period_start TIMESTAMPTZ,
    current_period_end TIMESTAMPTZ,
    cancel_at_period_end BOOLEAN DEFAULT FALSE,
    canceled_at TIMESTAMPTZ,
    trial_end TIMESTAMPTZ,
    trial_sermon_limit INTEGER DEFAULT 2,
    had_trial BOOLEAN DEFAULT FALSE,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

-- Analytics events
-- Append-only, never updated
CREATE TABLE IF NOT EXISTS analytics_events (
    id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
    user_id UUID REFERENCES auth.users(id) ON DELETE CASCADE NOT NULL,
    sermon_id UUID REFERENCES sermons(id) ON DELETE SET NULL,
    event_type TEXT NOT NULL CHECK (
        event_type IN ('sermon_created', 'content_generated', 'content_exported', 'devotional_viewed')
    ),
    event_data JSONB DEFAULT '{}'::jsonb,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- Columns added after the first release
ALTER TABLE sermons ADD COLUMN IF NOT EXISTS job_event_id TEXT;

-- Row Level Security (RLS) policies
-- Users can only access their own data

ALTER TABLE users_metadata ENABLE ROW LEVEL SECURITY;
ALTER TABLE sermons ENABLE ROW LEVEL SECURITY;
ALTER TABLE generated_content ENABLE ROW LEVEL SECURITY;
ALTER TABLE subscriptions ENABLE ROW LEVEL SECURITY;
ALTER TABLE analytics_events ENABLE ROW LEVEL SECURITY;

CREATE POLICY metadata_select_own ON users_metadata
    FOR SELECT USING (auth.uid() = user_id);

CREATE POLICY metadata_insert_own ON users_metadata
    FOR INSERT WITH CHECK (auth.uid() = user_id);

CREATE POLICY metadata_update_own ON users_metadata
    FOR UPDATE USING (auth.uid() = user_id)
    WITH CHECK (auth.uid() = user_id);

CREATE POLICY sermons_all_own ON sermons
    FOR ALL USING (auth.uid() = user_id)
    WITH CHECK (auth.uid() = user_id);

-- Generated content: access through the owning sermon
CREATE POLICY content_all_own ON generated_content
    FOR ALL USING (
        EXISTS (SELECT 1 FROM sermons s WHERE s.id = sermon_id AND s.user_id = auth.uid())
    );

-- Subscriptions: read-only for users, written by webhooks (service role)
CREATE POLICY subscriptions_select_own ON subscriptions
    FOR SELECT USING (auth.uid() = user_id);

-- Analytics: users may insert and read their own events, never update
CREATE POLICY analytics_insert_own ON analytics_events
    FOR INSERT WITH CHECK (auth.uid() = user_id);

CREATE POLICY analytics_select_own ON analytics_events
    FOR SELECT USING (auth.uid() = user_id);
"""

INDEXES_SQL = """
-- Performance indexes
CREATE INDEX IF NOT EXISTS idx_sermons_user ON sermons(user_id);
CREATE INDEX IF NOT EXISTS idx_sermons_user_created ON sermons(user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_sermons_status ON sermons(status);

CREATE INDEX IF NOT EXISTS idx_content_sermon ON generated_content(sermon_id);

CREATE INDEX IF NOT EXISTS idx_subscriptions_customer ON subscriptions(stripe_customer_id);
CREATE INDEX IF NOT EXISTS idx_subscriptions_status ON subscriptions(status);

CREATE INDEX IF NOT EXISTS idx_analytics_user_created ON analytics_events(user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_analytics_type ON analytics_events(event_type);
"""

STORAGE_SQL = """
-- Storage buckets used by uploads
INSERT INTO storage.buckets (id, name, public) VALUES
    ('sermons', 'sermons', FALSE),
    ('church-logos', 'church-logos', TRUE),
    ('avatars', 'avatars', TRUE)
ON CONFLICT (id) DO NOTHING;
"""
