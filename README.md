# dispeys

dispeys drives a Ulanzi D200 button deck from a Linux X11 desktop. It watches
the window that has focus and shows on the deck the page of buttons configured
for the process behind that window. Releasing a key runs the command bound to it.

## Installation

    pip install .

The desktop must provide `xdotool`, `xprop`, `wmctrl`, `pgrep`, `ps` and
`xdg-mime`. When `nvidia-smi` is present, the deck's small window can also show
GPU load; otherwise it shows 0.

The deck is reached through its `/dev/hidraw*` device file. dispeys finds it by
reading `/sys/class/hidraw` (vendor `0x2207`, product `0x0019`, interface 0), so
the user running it needs read and write access to that device file.

## Running

    dispeys

The controller opens the deck and starts watching the active window every two
seconds. If the deck is not connected, it keeps trying to open it. Stop it with
Ctrl+C or SIGTERM.

Options:

- `dispeys --settings`: open the settings file in the default `text/plain`
  editor (as `xdg-mime` reports it) and exit.
- `dispeys --autostart on` / `dispeys --autostart off`: add or remove a desktop
  entry in `~/.config/autostart` so dispeys starts on login, then exit.
- `dispeys --version`: print the version.

## Settings

Settings live in `~/.config/dispeysController/settings.json`, and button icons
are looked up in `~/.config/dispeysController/icons`. If the settings file does
not exist, it is created holding a single empty `default` page, and the icons
directory is created empty. The file maps a process name, as `ps -o comm=`
reports it, to a page:

    {
      "default": {
        "name": "Default",
        "buttons": [
          {"name": "Terminal", "icon": "terminal.png", "command": "$ xterm"},
          {"name": "Browser page", "icon": "web.png", "command": "@ firefox"}
        ]
      }
    }

The `default` page is used for any process that has no entry of its own. The
n-th button goes to key n, filled row by row, five keys to a row. The file is
read again, if it changed, each time the active application changes.

Button commands:

- `$ program`: bring a window of `program` to the front. Each further press
  moves on to the next window of that program. If it has no window, it is
  started.
- `@ name`: pin the page of process `name` (or the `default` page), whatever
  window has focus. A bare `@` goes back to following the active window.
- anything else is run with `sh -c`.

Pressing the deck's small-window key cycles the small window through clock,
system statistics and background. When the deck reports its device info, it is
set to full brightness and the current page is sent again.

## Library use

- `dispeys.protocol`: packet building and parsing (`build_packet`,
  `parse_incoming`, `parse_input`), `LabelStyle`, `SmallWindowData`.
- `dispeys.device.UlanziD200Device`: `set_buttons`, `set_brightness`,
  `set_label_style`, `set_small_window_data`, `start`, `stop`; released keys
  arrive on its `key_events` queue.
- `dispeys.settings.AppSettings`: `load`, `save`, `settings_for_process`.
- `dispeys.window_focus.focus_or_run`, `dispeys.app_detector.AppDetector`.
- `dispeys.autostart`: `enable`, `disable`, `is_enabled`.

## What it does not do

There is no system tray icon or menu and no graphical settings editor; settings
are edited as a JSON file, and `--settings` only opens it in an editor. No
default icons are installed: put the image files named in the settings into the
icons directory yourself. Window detection works only under X11.