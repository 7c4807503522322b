from whs import get_db
from whs.constants.permissions import ALL_PERMISSION_CODES, ROLE_PRESETS
from whs.models.authz import Permission
from scripts.seed_authz import run, validate, build_role_permission_map, parse_args


def test_seed_is_idempotent_and_expands_owner(app_context):
    session = get_db()
    run(session)
    created_p, created_r = run(session)
    assert (created_p, created_r) == (0, 0)
    role_map = build_role_permission_map(session)
    assert role_map['Owner'] == sorted(ALL_PERMISSION_CODES)
    for name, codes in ROLE_PRESETS.items():
        if '*' not in codes:
            assert role_map[name] == sorted(codes)
    assert validate(session) == []


def test_validate_flags_unknown_codes(app_context):
    session = get_db()
    session.add(Permission(code='RPR.APROVE', service='RPR', action='APROVE', description_i18n={'en': 'typo'}))
    session.flush()
    problems = validate(session)
    session.rollback()
    assert problems == ["Unknown action 'APROVE' for service 'RPR' in code: RPR.APROVE (did you mean APPROVE)"]


def test_parse_args_flags():
    args = parse_args(['--dry-run', '--validate'])
    assert args.dry_run and args.validate and not args.show_roles
