# dpvapi

The service layer behind a parkour association's web API. It is a library and
has no command-line entry point. Each module covers one area:

- `dpvapi.accounting` keeps balance sheets. `AccountingService` reads bank
  notification messages (`update_balance_sheet`) and multi-line reports grouped
  by date (`update_balance_sheet_from_report`) into `BalanceSheet` entries. It
  skips entries it already has. It exports a sheet as CSV sorted by date, with a
  closing total row (`export_to_csv`), and loads and saves sheets as JSON
  (`load_from_json`, `save_to_json`). Saved files can be read only by their owner.
- `dpvapi.sanitizer` cleans user-supplied HTML against an allow-list with
  `sanitize_html`. It drops scripts and unsafe URLs. Links to absolute http(s)
  addresses get `target="_blank"` and `rel="nofollow noopener"`.
- `dpvapi.description` gives Markdown text a level-one heading (`fix_title`,
  `get_title`) and renders Markdown to sanitised HTML with heading ids
  (`render`). `translate_document` translates text through a DeepL-compatible
  endpoint and raises `TranslationError` when that fails.
- `dpvapi.verband` reads club registrations from the submissions of a Nextcloud
  form. `VerbandClient` fetches them with `get_vereine`, `vereine_by_bundesland`
  and `bundesland_info`. The helpers `extract_vereine_list`, `normalize_url`,
  `sort_vereine`, `aggregate_vereine_by_bundesland` and
  `aggregate_mitglieder_by_bundesland` work on data already in hand.
- `dpvapi.mitmachen` validates requests to join a working group
  (`MitmachenRequest`, `compose_mitmachen`). `mitmachen` sends them as
  quoted-printable HTML mail through `MailSender`. The recipient is
  `<group>@example.com`, and the default sender address is `noreply@example.com`.
- `dpvapi.users` validates user keys (`validate_key`, `validate_custom_key`).
  `UserService` creates and updates users and adds, edits and deletes Markdown
  comments on their profiles. Users are kept in a `UserRepository`.

## Installation

```
pip install .
```

To install with the test dependencies and run the tests:

```
pip install .[test]
pytest
```

## Examples

```python
from dpvapi.accounting import AccountingService, BalanceSheet

service = AccountingService()
sheet = BalanceSheet()
service.update_balance_sheet(sheet, "13.01.2024 📩 12345.67 EUR - Create account")
service.update_balance_sheet(sheet, "14.01.2024 📤 -5.00 EUR - Server Fee")
print(service.export_to_csv(sheet))
```

This prints the following CSV:

```
Date,Balance Change,Notes
2024-01-13,12345.67,Create account
2024-01-14,-5.00,Server Fee
Total,12340.67,
```

Comments on a user:

```python
from dpvapi.users import UserRepository, UserService

service = UserService(UserRepository(), user_types=["member", "administrator"])
service.create("traceur_1", "Traceur")
service.add_comment("traceur_1", "author", "title", "text")
user = service.repository.read("traceur_1")
user.comments[0].text     # "# title\n\ntext"
user.comments[0].render   # sanitised HTML with <h1 id="title">title</h1>
```

Clubs per federal state:

```python
from dpvapi.verband import VerbandClient

password = "password"
client = VerbandClient("https://cloud.example.com/", "42", "user", password=password)
for name, state in client.bundesland_info().items():
    print(name, state.vereine, state.mitglieder)
```

Functions and methods raise exceptions when they fail. Each module has its own
exception type: `AccountingError`, `TranslationError`, `VerbandError`,
`MitmachenError` and `UserError`.

## What this package does not do

- It does not run an HTTP server or define routes. Applications call the
  services directly.
- It has no database. `UserRepository` keeps users in memory only, and balance
  sheets are stored only as JSON files by `AccountingService`.
- It does not handle photo files, image uploads or logins of any kind.