from __future__ import annotations
import logging
import time
from typing import Iterator, Optional, Tuple

import cv2
import mediapipe as mp

from pushup_tracker.counter.landmarks import Frame, coerce_frame

logger = logging.getLogger(__name__)


def iter_webcam_frames(
    device: int = 0,
    min_detection_confidence: float = 0.5,
    min_tracking_confidence: float = 0.5,
    show_window: bool = False,
) -> Iterator[Tuple[float, Optional[Frame]]]:
    """
    Webcam frame source: yields (timestamp, frame) once per inference cycle.

    Runs in the caller's thread, so a slow consumer simply makes the camera
    drop frames. ``frame`` is None when MediaPipe found no person.
    """
    mp_pose = mp.solutions.pose
    cap = cv2.VideoCapture(device)
    if not cap.isOpened():
        raise RuntimeError("Webcam not available")
    pose = mp_pose.Pose(
        model_complexity=1,
        smooth_landmarks=True,
        enable_segmentation=False,
        min_detection_confidence=min_detection_confidence,
        min_tracking_confidence=min_tracking_confidence,
    )
    if show_window:
        try:
            cv2.namedWindow("Pushups", cv2.WINDOW_NORMAL)
        except cv2.error:
            # no display available, run headless
            show_window = False
    try:
        while True:
            ok, image = cap.read()
            if not ok:
                time.sleep(0.01)
                continue
            res = pose.process(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))
            t = time.time()
            frame = coerce_frame(res.pose_landmarks) if res.pose_landmarks else None
            if show_window:
                cv2.imshow("Pushups", image)
                # q closes the preview and ends the stream
                if cv2.waitKey(1) & 0xFF == ord("q"):
                    break
            yield t, frame
    finally:
        cap.release()
        pose.close()
        if show_window:
            cv2.destroyAllWindows()
        logger.info("webcam released")
