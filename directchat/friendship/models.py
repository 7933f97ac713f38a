friendships_sql = """
CREATE TYPE friendship_status AS ENUM ('pending', 'accepted');

CREATE TABLE friendships (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),

    requester_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
    addressee_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,

    status friendship_status NOT NULL DEFAULT 'pending',

    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),

    -- Prevent a user from sending a request to themselves
    CONSTRAINT prevent_self_request CHECK (requester_id <> addressee_id)
);

-- One row per unordered pair is checked before insert, not enforced here.
"""
