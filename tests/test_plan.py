"""Tests for the sync plan engine."""
from plan import (
    DesiredUser,
    PlanAdd,
    PlanRemove,
    PlanUpdate,
    SwaUser,
    compute_sync_plan,
    default_role_mapping,
    map_role,
    normalize_login,
    normalize_role_set,
    permission_rank,
    resolve_identity,
)

MAPPING = default_role_mapping()


class TestNormalization:

    def test_normalize_login(self):
        assert normalize_login('  Alice ') == 'alice'

    def test_resolve_identity_prefers_user_details(self):
        user = SwaUser(user_details=' Octocat ', display_name='someone-else')
        assert resolve_identity(user) == 'octocat'

    def test_resolve_identity_falls_back_to_display_name(self):
        assert resolve_identity(SwaUser(user_details='  ', display_name='Bob')) == 'bob'

    def test_resolve_identity_unidentifiable(self):
        assert resolve_identity(SwaUser(roles='github-admin')) is None
        assert resolve_identity(SwaUser(user_details='', display_name=' ')) is None

    def test_normalize_role_set_sorts_and_filters(self):
        roles = ' GitHub-Write, anonymous,github-admin ,authenticated'
        assert normalize_role_set(roles, 'github-') == 'github-admin,github-write'

    def test_normalize_role_set_empty(self):
        assert normalize_role_set(None, 'github-') == ''
        assert normalize_role_set('', 'github-') == ''

    def test_map_role_uses_mapping(self):
        assert map_role('admin', MAPPING) == 'github-admin'
        assert map_role('triage', {**MAPPING, 'triage': 'github-helpers'}) == 'github-helpers'

    def test_permission_ladder_order(self):
        ranks = [permission_rank(level) for level in ('read', 'triage', 'write', 'maintain', 'admin')]
        assert ranks == sorted(ranks)
        assert len(set(ranks)) == 5


class TestComputeSyncPlan:

    def test_add_and_remove_scenario(self):
        desired = [DesiredUser('alice', 'admin'), DesiredUser('bob', 'write')]
        existing = [
            SwaUser(user_details='bob', roles='github-write'),
            SwaUser(user_details='carol', roles='github-write'),
        ]

        plan = compute_sync_plan(desired, existing, MAPPING, 'github-')

        assert plan.to_add == [PlanAdd('alice', 'github-admin')]
        assert plan.to_update == []
        assert plan.to_remove == [PlanRemove('carol', 'github-write')]

    def test_role_change_is_update(self):
        plan = compute_sync_plan(
            [DesiredUser('alice', 'admin')],
            [SwaUser(user_details='alice', roles='old-role')],
            {'admin': 'github-admin'},
            'github-',
        )

        assert plan.to_update == [PlanUpdate('alice', 'github-admin', 'old-role')]
        assert plan.to_add == []
        assert plan.to_remove == []

    def test_default_roles_do_not_cause_update(self):
        plan = compute_sync_plan(
            [DesiredUser('alice', 'admin')],
            [SwaUser(user_details='alice', roles='github-admin,anonymous,authenticated')],
            MAPPING,
            'github-',
        )
        assert not plan.has_changes

    def test_role_order_is_ignored(self):
        plan = compute_sync_plan(
            [DesiredUser('alice', 'admin')],
            [SwaUser(user_details='alice', roles='github-extra,github-admin')],
            {'admin': 'github-admin,github-extra'},
            'github-',
        )
        assert plan.to_update == []

    def test_login_case_and_whitespace_insensitive(self):
        plan = compute_sync_plan(
            [DesiredUser(' Alice ', 'write')],
            [SwaUser(user_details='alice', roles='github-write')],
            MAPPING,
            'github-',
        )
        assert not plan.has_changes

    def test_display_name_fallback_matches(self):
        plan = compute_sync_plan(
            [DesiredUser('octocat', 'write')],
            [SwaUser(display_name='OctoCat', roles='github-write')],
            MAPPING,
        )
        assert not plan.has_changes

    def test_unidentifiable_user_is_ignored(self):
        plan = compute_sync_plan(
            [DesiredUser('alice', 'write')],
            [SwaUser(user_id='123', roles='github-admin')],
            MAPPING,
        )
        assert plan.to_add == [PlanAdd('alice', 'github-write')]
        assert plan.to_remove == []

    def test_missing_roles_reported_as_empty(self):
        plan = compute_sync_plan(
            [DesiredUser('alice', 'write')],
            [SwaUser(user_details='alice'), SwaUser(user_details='bob')],
            MAPPING,
        )
        assert plan.to_update == [PlanUpdate('alice', 'github-write', '')]
        assert plan.to_remove == [PlanRemove('bob', '')]

    def test_duplicate_login_last_wins(self):
        plan = compute_sync_plan(
            [DesiredUser('alice', 'write'), DesiredUser('ALICE', 'admin')],
            [],
            MAPPING,
        )
        assert plan.to_add == [PlanAdd('alice', 'github-admin')]

    def test_order_follows_input(self):
        desired = [DesiredUser(login, 'write') for login in ('zed', 'amy', 'kim')]
        existing = [SwaUser(user_details=login, roles='github-write') for login in ('yan', 'bea')]

        plan = compute_sync_plan(desired, existing, MAPPING)

        assert [add.login for add in plan.to_add] == ['zed', 'amy', 'kim']
        assert [removal.login for removal in plan.to_remove] == ['yan', 'bea']

    def test_rerun_after_apply_is_empty(self):
        desired = [DesiredUser('alice', 'admin'), DesiredUser('bob', 'write'), DesiredUser('dan', 'maintain')]
        existing = [
            SwaUser(user_details='bob', roles='github-read,authenticated'),
            SwaUser(user_details='carol', roles='github-write'),
        ]
        plan = compute_sync_plan(desired, existing, MAPPING)

        after = [SwaUser(user_details=add.login, roles=add.role) for add in plan.to_add]
        after += [SwaUser(user_details=update.login, roles=update.role) for update in plan.to_update]

        assert not compute_sync_plan(desired, after, MAPPING).has_changes

    def test_inputs_are_not_modified(self):
        desired = [DesiredUser('alice', 'write')]
        existing = [SwaUser(user_details='bob', roles='github-write')]

        compute_sync_plan(desired, existing, MAPPING)

        assert desired == [DesiredUser('alice', 'write')]
        assert existing == [SwaUser(user_details='bob', roles='github-write')]
