# motionlite

motionlite watches a camera for motion. When enough pixels change between
two consecutive frames, it records a short Motion-JPEG clip in an AVI file.
A small HTTP server shows a control panel that lists recent clips, serves the
clips, and offers a live MJPEG stream.

## Installation

```
pip install .
```

For the tests:

```
pip install .[test]
pytest
```

## Running

```
motionlite [--camera INDEX] [--port PORT] [--recordings-dir DIR]
```

- `--camera` is the camera index. The default is `0`. The camera is opened
  through `pygame.camera`. If that fails, the program tries the device path
  `/dev/video<INDEX>` instead.
- `--port` is the HTTP port. The default is `8080`. The server listens on
  `0.0.0.0`.
- `--recordings-dir` is where clips are saved. The default is `recordings`.
  The directory is created if it is missing.

The program logs its progress at INFO level. It exits with status 1 if no
camera can be opened. Press Ctrl+C to stop it. It then stops both worker
threads and releases the camera.

## How detection works

`motionlite.motion.MotionDetector` handles each frame in four steps:

1. It converts the frame to grayscale.
2. It applies a Gaussian blur (kernel size 15).
3. It counts the pixels whose difference from the previous frame is greater
   than 25.
4. If more than 1000 pixels changed, it records a clip of about 5 seconds.

Each clip is named `motion_YYYYmmdd_HHMMSS.avi` after the local time.

The clip's frame rate is the camera's reported rate. If that rate is not
between 0 and 60, the configured 30 FPS is used instead. The pygame camera
does not report a rate, so 30 FPS is used in practice.

A recording stops early if a live stream starts. An empty recording is deleted
and is not listed. The 20 newest clips are kept in the detection list. Older
clips drop off the list but stay on disk.

Detection pauses while any live-stream client is connected. It resumes, with a
fresh reference frame, once the last client leaves.

## Endpoints

- `GET /` shows the control panel. The list of detections refreshes every 15
  seconds.
- `GET /live` serves a `multipart/x-mixed-replace` stream of JPEG frames at
  quality 90.
- `GET /detections` returns a JSON array, newest first. Each entry has
  `timestamp` (local time written as `YYYY-MM-DDTHH:MM:SSZ`),
  `prettyTimestamp` and `videoFilename`.
- `GET /videos/<name>` returns a clip as `video/avi`. The name is first reduced
  to its last path component. Characters other than letters, digits, `_`, `-`
  and `.` are removed. Only clips in the current detection list are served.
  Any other name gets a 404.

Any other path returns 404. Any method other than GET returns 405.

## Configuration

The defaults live in `motionlite.config.Settings`, a frozen dataclass:

- `cap_width`, `cap_height`, `cap_fps`: 1280, 720, 30.0
- `gaussian_blur_size`: 15 (must be a positive odd number)
- `threshold_value`: 25
- `min_non_zero_count`: 1000
- `video_record_duration_seconds`: 5
- `max_recent_detections`: 20
- `camera_index`, `http_port`, `recordings_dir`: 0, 8080, `recordings`

## Library use

- `motionlite.state.SharedState` holds the camera, the detection list and the
  live-stream client count. Any object with the methods of
  `motionlite.state.FrameSource` can serve as the camera. It must return BGR
  `numpy` frames.
- `motionlite.motion.MotionDetector(state, settings)` has two ways to run:
  - `run(stop_event)` runs the detection loop.
  - `step()` processes a single frame.
- `motionlite.server.serve(state, settings, stop_event)` runs the HTTP server.
- `motionlite.http_handler.handle_client(conn, state, settings)` answers one
  connection.
- `motionlite.sanitize.sanitize_filename` cleans a requested file name.
- `motionlite.avi.MjpegAviWriter` writes MJPEG AVI files. It can be used as a
  context manager. `motionlite.avi.encode_jpeg` encodes a single frame.

## Limitations

- The server handles one connection at a time. While a client watches
  `/live`, other requests wait.
- There is no authentication and no HTTPS.
- Old recordings are never deleted from disk.
- Only the camera, port and recordings directory can be set on the command
  line. Other settings require building a `Settings` in code.