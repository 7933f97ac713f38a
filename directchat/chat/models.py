conversations_sql = """
CREATE TABLE conversations (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    created_at TIMESTAMPTZ DEFAULT now()
);
"""

conversation_participants_sql = """
CREATE TABLE conversation_participants (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    conversation_id UUID NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
    profile_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
    created_at TIMESTAMPTZ DEFAULT now(),
    UNIQUE (conversation_id, profile_id)
);

-- Pair uniqueness across conversations is not enforced here, creation goes
-- through find-or-create (see PairArbiter).
"""

messages_sql = """
CREATE TYPE message_type AS ENUM ('text', 'image', 'voice', 'file');

CREATE TABLE messages (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    conversation_id UUID NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
    sender_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
    message_type message_type NOT NULL DEFAULT 'text',
    content TEXT,
    file_url TEXT,
    file_name TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),

    CONSTRAINT text_has_content CHECK (message_type <> 'text' OR content IS NOT NULL),
    CONSTRAINT attachment_has_url CHECK (message_type = 'text' OR file_url IS NOT NULL)
);

CREATE INDEX messages_conversation_created_at ON messages (conversation_id, created_at);

-- Live delivery listens to inserts on this table
ALTER PUBLICATION supabase_realtime ADD TABLE messages;
"""
