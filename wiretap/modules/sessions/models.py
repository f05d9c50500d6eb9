# Supabase table: sessions
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:
- id: uuid (primary key)
- user_id: uuid (not null) - Supabase Auth user id
- instance_id: uuid (foreign key to instances.id, not null)
- session_token: text (not null, unique) - signed console session token
- console_type: text (not null) - NOVNC, VNC, SERIAL, SPICE, RDP or MKS
- expires_at: timestamp (not null) - absolute expiry, renewed by extend
- created_at: timestamp (default: now())
"""
