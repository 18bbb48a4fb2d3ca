# -*- coding: utf-8 -*-

from qrlogin.api.scheme import error_codes


class Error(Exception):

    def __init__(self, err=None, **kwargs):
        if err is not None:
            self.errcode = err[0]
            self.errmsg = err[1]
            if kwargs:
                self.errmsg = self.errmsg.format(**kwargs)
            self.err = err
        else:
            self.err = error_codes.SERVER_ERROR
            self.errcode = error_codes.SERVER_ERROR[0]
            self.errmsg = error_codes.SERVER_ERROR[1]
        super().__init__(self.errmsg)

    def __str__(self):
        return "错误码: {}, 错误内容: {}".format(self.errcode, self.errmsg)

    def to_dict(self) -> dict:
        return {"errcode": self.errcode, "errmsg": self.errmsg}
