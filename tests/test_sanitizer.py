"""
Tests for the per-type sanitize stage.

Tests cover:
- Type dispatch (text, number, range, selects, checkbox, segmented toggle)
- Options and presets (empty handling, HTML escaping, number normalization)
- Excluded fields
- Sanitize handler wired into a controller
"""
import pytest

from formstate import (
    FieldConfig,
    SanitizeOptions,
    StatusType,
    create_sanitize_handler,
    sanitize_field,
    sanitize_form,
)


def field(**data):
    data.setdefault('id', 'f')
    return FieldConfig.from_dict(data)


class TestText:

    def test_trims(self):
        assert sanitize_field('f', '  Ann  ', field()) == 'Ann'

    def test_none_becomes_empty_string_by_default(self):
        assert sanitize_field('f', None, field()) == ''

    def test_empty_to_none(self):
        options = SanitizeOptions(convert_empty_to_none=True)
        assert sanitize_field('f', '   ', field(), options) is None

    def test_no_trim(self):
        assert sanitize_field('f', ' a ', field(), SanitizeOptions(trim_strings=False)) == ' a '

    def test_escape_html(self):
        options = SanitizeOptions(escape_html=True)
        assert sanitize_field('f', '<b>"Tom" & Jerry</b>', field(), options) == (
            '&lt;b&gt;&quot;Tom&quot; &amp; Jerry&lt;/b&gt;'
        )

    @pytest.mark.parametrize('field_type', ['password', 'email'])
    def test_escape_skips_password_and_email(self, field_type):
        options = SanitizeOptions(escape_html=True)
        assert sanitize_field('f', 'a<b>', field(type=field_type), options) == 'a<b>'

    def test_max_length(self):
        assert sanitize_field('f', 'abcdef', field(maxLength=3)) == 'abc'


class TestNumber:

    @pytest.mark.parametrize('raw, expected', [
        ('42', 42),
        (' 1 234,5 ', 1234.5),
        ('-7 kg', -7),
        ('3.14', 3.14),
        (12, 12),
        (2.5, 2.5),
    ])
    def test_parsing(self, raw, expected):
        assert sanitize_field('n', raw, field(id='n', type='number')) == expected

    @pytest.mark.parametrize('raw', ['abc', float('nan'), float('inf'), True, ['1']])
    def test_unparseable(self, raw):
        assert sanitize_field('n', raw, field(id='n', type='number')) is None

    def test_empty_defaults_to_none(self):
        assert sanitize_field('n', '', field(type='number')) is None
        assert sanitize_field('n', '', field(type='number'), SanitizeOptions(convert_empty_to_none=False)) == 0

    def test_clamped_to_bounds(self):
        config = field(type='number', min=1, max=10)
        assert sanitize_field('n', '0', config) == 1
        assert sanitize_field('n', '99', config) == 10
        assert sanitize_field('n', '5', config) == 5

    def test_bounds_ignored_without_normalization(self):
        config = field(type='number', min=1, max=10)
        assert sanitize_field('n', '99', config, SanitizeOptions(normalize_numbers=False)) == 99

    def test_precision(self):
        assert sanitize_field('n', '3.14159', field(type='number', precision=2)) == 3.14


class TestRange:

    def test_bounds_sanitized(self):
        assert sanitize_field('r', {'min': '10', 'max': '20 '}, field(type='range')) == {'min': 10, 'max': 20}

    def test_inverted_range_collapses_to_min(self):
        assert sanitize_field('r', {'min': 30, 'max': 20}, field(type='range')) == {'min': 30, 'max': 30}

    @pytest.mark.parametrize('raw', [None, 'cheap', [1, 2]])
    def test_non_mapping(self, raw):
        assert sanitize_field('r', raw, field(type='range')) == {'min': None, 'max': None}

    def test_missing_bound(self):
        assert sanitize_field('r', {'max': '5'}, field(type='range')) == {'min': None, 'max': 5}


class TestSelects:

    def test_single(self):
        assert sanitize_field('s', ' red ', field(type='select-single')) == 'red'
        assert sanitize_field('s', '', field(type='select-single')) is None
        assert sanitize_field('s', 7, field(type='select-single')) == '7'

    def test_multi_cleans_and_deduplicates(self):
        raw = [' a', 'b', '', None, 'a ', 3]
        assert sanitize_field('m', raw, field(type='select-multi')) == ['a', 'b', '3']

    def test_multi_max_selections(self):
        assert sanitize_field('m', ['a', 'b', 'c'], field(type='select-multi', maxSelections=2)) == ['a', 'b']

    def test_multi_single_value(self):
        assert sanitize_field('m', ' x ', field(type='select-multi')) == ['x']
        assert sanitize_field('m', None, field(type='select-multi')) == []


class TestCheckboxAndToggle:

    @pytest.mark.parametrize('raw, expected', [
        (True, True),
        (False, False),
        (None, False),
        ('', False),
        (1, True),
        (0, False),
        (' Yes ', True),
        ('on', True),
        ('off', False),
    ])
    def test_checkbox(self, raw, expected):
        assert sanitize_field('c', raw, field(type='checkbox')) is expected

    def test_toggle_accepts_known_options(self):
        config = field(type='segmented-toggle', options=[{'value': 'day'}, {'value': 'week'}])
        assert sanitize_field('t', ' week ', config) == 'week'

    def test_toggle_rejects_unknown_option(self):
        config = field(type='segmented-toggle', options=['day', 'week'])
        assert sanitize_field('t', 'year', config) == ''
        assert sanitize_field('t', 'year', config, SanitizeOptions(convert_empty_to_none=True)) is None


class TestForm:

    FIELDS = [
        {'id': 'email', 'type': 'email'},
        {'id': 'qty', 'type': 'number', 'min': 1},
        {'id': 'note'},
    ]

    def test_sanitize_form(self):
        values = {'email': ' a@b.com ', 'qty': '0', 'note': ' hi ', 'extra': ' raw '}

        assert sanitize_form(values, self.FIELDS) == {
            'email': 'a@b.com', 'qty': 1, 'note': 'hi', 'extra': 'raw',
        }

    def test_excluded_fields_untouched(self):
        options = SanitizeOptions(exclude_fields=frozenset({'note'}))
        assert sanitize_form({'note': ' hi '}, self.FIELDS, options) == {'note': ' hi '}

    def test_fields_matched_by_name(self):
        fields = [{'id': 'f-qty', 'name': 'qty', 'type': 'number'}]
        assert sanitize_form({'qty': '5'}, fields) == {'qty': 5}

    def test_non_mapping_values(self):
        assert sanitize_form(None, self.FIELDS) == {}


class TestSanitizeHandler:

    def test_strict_preset_with_overrides(self):
        handler = create_sanitize_handler(TestForm.FIELDS, 'strict', exclude_fields=['email'])

        class Context:
            controller = None
            values = {'email': ' <a@b.com> ', 'note': ' <i>x</i> ', 'qty': ''}

        assert handler(Context()) == {
            'email': ' <a@b.com> ',
            'note': '&lt;i&gt;x&lt;/i&gt;',
            'qty': None,
        }

    def test_unknown_preset(self):
        with pytest.raises(KeyError):
            create_sanitize_handler(options='paranoid')

    @pytest.mark.asyncio
    async def test_uses_controller_fields_by_default(self, make_controller, widgets):
        seen = []
        controller = make_controller(
            {
                'fields': [
                    {'id': 'email', 'type': 'email', 'required': True},
                    {'id': 'age', 'type': 'number', 'min': 18},
                ],
            },
            sanitize=create_sanitize_handler(),
            submit=lambda ctx: seen.append(dict(ctx.values)),
        )
        controller.observe(widgets['email'].emit('change', value='  a@b.com '))
        controller.observe(widgets['age'].emit('change', value='16 years'))

        await controller.submit()

        assert seen == [{'email': 'a@b.com', 'age': 18}]
        assert controller.status.type is StatusType.SUCCESS

    @pytest.mark.asyncio
    async def test_whitespace_only_required_field_is_missing(self, make_controller, widgets):
        submit = []
        controller = make_controller(
            {'fields': [{'id': 'email', 'type': 'email', 'required': True}]},
            sanitize=create_sanitize_handler(),
            submit=submit.append,
        )
        controller.observe(widgets['email'].emit('change', value='   '))

        await controller.submit()

        assert submit == []
        assert controller.registry.get('email').status == 'error'
