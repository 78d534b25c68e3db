import time

import numpy as np
import open3d as o3d

from .cloud import PointFormat
from .fps import RateCounter
from .mailbox import LatestCloud

WINDOW_NAME = "PCL HDL Cloud"
AXES_SIZE = 3.0            # metres
BACKGROUND = (0.0, 0.0, 0.0)
POINT_SIZE = 1.0
CLIP_NEAR = 0.01
CLIP_FAR = 500.0
CAMERA_ZOOM = 0.3
LOOP_SLEEP = 0.0001        # 100 us

# GLFW codes
ACTION_RELEASE, ACTION_PRESS, ACTION_REPEAT = 0, 1, 2
MOD_SHIFT = 0x0001
MOUSE_BUTTON_LEFT = 0

SPECIAL_KEYS = {
    256: "Escape", 257: "Return", 258: "Tab", 259: "BackSpace",
    260: "Insert", 261: "Delete", 262: "Right", 263: "Left",
    264: "Down", 265: "Up", 266: "Prior", 267: "Next",
    268: "Home", 269: "End",
}
SPECIAL_KEYS.update({290 + i: f"F{i + 1}" for i in range(12)})

# Escape stays with open3d so it still closes the window
ECHO_KEYS = [k for k in range(32, 97)] + [k for k in SPECIAL_KEYS if k != 256]


class SimpleHDLViewer:
    """Draws the newest sweep from a grabber until the window is closed."""

    def __init__(self, grabber, point_format=PointFormat.XYZ, show_fps=False,
                 echo_input=False, stats=None, visualizer=None):
        self.grabber = grabber
        self.point_format = point_format
        self.echo_input = echo_input
        self.stats = stats
        self.mailbox = LatestCloud()
        self.cloud_fps = RateCounter("cloud callback", enabled=show_fps)
        self.draw_fps = RateCounter("drawing cloud", enabled=show_fps)

        self.vis = visualizer or o3d.visualization.VisualizerWithKeyCallback()
        self.pcd = o3d.geometry.PointCloud()
        self._added = False
        self._cursor = (0, 0)

    # ------------------------------------------------------------------
    # callbacks

    def cloud_callback(self, cloud):
        self.cloud_fps.tick()
        if self.stats is not None:
            self.stats.on_received()
        self.mailbox.put(cloud)

    def keyboard_callback(self, key, action, mods=0):
        if key in SPECIAL_KEYS:
            msg = f"the special key '{SPECIAL_KEYS[key]}' was"
        else:
            ch = chr(key)
            if ch.isalpha() and not mods & MOD_SHIFT:
                ch = ch.lower()
            msg = f"the key '{ch}' ({ord(ch)}) was"
        if action == ACTION_RELEASE:
            print(msg + " released")
        else:
            print(msg + " pressed")
        return False

    def mouse_move_callback(self, x, y):
        self._cursor = (int(x), int(y))
        return False

    def mouse_callback(self, button, action, mods=0):
        if action == ACTION_PRESS and button == MOUSE_BUTTON_LEFT:
            x, y = self._cursor
            print(f"{x} , {y}")
        return False

    def _register_input(self):
        for key in ECHO_KEYS:
            self.vis.register_key_action_callback(
                key, lambda vis, action, mods, key=key: self.keyboard_callback(key, action, mods))
        self.vis.register_mouse_move_callback(lambda vis, x, y: self.mouse_move_callback(x, y))
        self.vis.register_mouse_button_callback(
            lambda vis, button, action, mods: self.mouse_callback(button, action, mods))

    # ------------------------------------------------------------------
    # drawing

    def _setup_window(self):
        self.vis.create_window(window_name=WINDOW_NAME)
        opt = self.vis.get_render_option()
        opt.background_color = np.asarray(BACKGROUND)
        opt.point_size = POINT_SIZE
        self.vis.add_geometry(o3d.geometry.TriangleMesh.create_coordinate_frame(size=AXES_SIZE))
        if self.echo_input:
            self._register_input()

    def _setup_camera(self):
        ctr = self.vis.get_view_control()
        ctr.set_lookat([0.0, 0.0, 0.0])
        ctr.set_front([0.0, 0.0, 1.0])
        ctr.set_up([0.0, 1.0, 0.0])
        ctr.set_zoom(CAMERA_ZOOM)
        ctr.set_constant_z_near(CLIP_NEAR)
        ctr.set_constant_z_far(CLIP_FAR)

    def show(self, cloud):
        self.draw_fps.tick()
        self.pcd.points = o3d.utility.Vector3dVector(cloud.points.astype(np.float64))
        if self.point_format is PointFormat.XYZRGB and cloud.colors is not None:
            self.pcd.colors = o3d.utility.Vector3dVector(cloud.colors)
        if self._added:
            self.vis.update_geometry(self.pcd)
        else:
            self.vis.add_geometry(self.pcd)
            self._setup_camera()
            self._added = True
        if self.stats is not None:
            self.stats.on_drawn(len(cloud), self.mailbox.dropped)

    def run(self):
        self._setup_window()
        connection = self.grabber.register_callback(self.cloud_callback)
        self.grabber.start()
        if self.stats is not None:
            self.stats.set_running(True)

        try:
            while True:
                # See if we can get a cloud
                cloud = self.mailbox.try_take()
                if cloud is not None:
                    self.show(cloud)

                if not self.vis.poll_events():
                    break
                self.vis.update_renderer()

                if not self.grabber.is_running():
                    cloud = self.mailbox.try_take()
                    if cloud is not None:
                        self.show(cloud)
                    if self.stats is not None:
                        self.stats.set_running(False)
                    self.vis.run()
                    break

                time.sleep(LOOP_SLEEP)
        finally:
            self.grabber.stop()
            connection.disconnect()
            if self.stats is not None:
                self.stats.set_running(False)
            self.vis.destroy_window()
