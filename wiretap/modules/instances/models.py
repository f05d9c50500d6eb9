# Supabase table: instances
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py and reconciler.py

"""
Expected Supabase table structure:
- id: uuid (primary key)
- name: text (not null)
- openstack_id: text (not null, unique) - Nova server id
- workshop_id: uuid (foreign key to workshops.id, not null, on delete cascade)
- team_id: uuid (nullable)
- user_id: uuid (nullable)
- status: text (default: 'UNKNOWN') - Nova status, e.g. ACTIVE, SHUTOFF, ERROR
- power_state: text (default: 'UNKNOWN') - RUNNING, SHUTDOWN, PAUSED, ...
- ip_addresses: jsonb (default: []) - ordered list of address strings, replaced on every sync
- locked: boolean (default: false) - console access only with override privilege
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
"""
